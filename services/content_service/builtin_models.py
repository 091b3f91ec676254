# builtin_models.py - Workflow models bundled with the service
# This file declares the standard, premium and comparison workflow models registered at startup.

from .models import (
    ContentRules, LinkDistributionRules, OutputSplit, Phase, PostProcessingStep, QualityLevel,
    Range, Rules, StepType, StructureRules, WorkflowModel
)

QUICK_TAKE_DELIMITER = "===QUICK_TAKE==="

def _images(generate_content: bool = False, max_content_images: int = 0) -> PostProcessingStep:
    return PostProcessingStep(
        id="images",
        name="Image Generation",
        type=StepType.IMAGE_GENERATION,
        config={
            "generate_featured": True,
            "generate_content": generate_content,
            "max_content_images": max_content_images,
            "style": "photographic",
        },
    )

SEO_STEP = PostProcessingStep(id="seo", name="SEO Enhancement", type=StepType.SEO_ENHANCEMENT)
INTERLINKING_STEP = PostProcessingStep(id="interlinking", name="Interlinking", type=StepType.INTERLINKING)
PUBLISHING_STEP = PostProcessingStep(id="publishing", name="Publishing Preparation",
                                     type=StepType.PUBLISHING_PREP)

# =========================
# STANDARD
# =========================

STANDARD_MODEL = WorkflowModel(
    id="standard",
    name="Standard Content Workflow",
    description="Outline then full draft in one pass; the fallback for every request",
    quality_levels={QualityLevel.LOW, QualityLevel.MEDIUM, QualityLevel.HIGH},
    phases=[
        Phase(
            id="outline",
            name="Outline",
            model="gpt-4o-mini",
            temperature=0.5,
            max_tokens=1000,
            system_prompt="You are a content strategist who plans clear, well-structured blog posts.",
            prompt_template=(
                "Plan a blog post about \"{{topic}}\" for {{target_audience}}.\n\n"
                "Primary keyword: {{primary_keyword}}\n"
                "Other keywords: {{secondary_keywords}}\n"
                "Target length: {{word_count}} words\n\n"
                "List 3-6 H2 sections in Markdown (## Heading) with one sentence each "
                "describing what the section covers. Finish with a conclusion section."
            ),
            required_inputs=["topic", "target_audience", "primary_keyword",
                             "secondary_keywords", "word_count"],
            outputs=["outline"],
        ),
        Phase(
            id="content",
            name="Draft",
            model="gpt-4o-mini",
            temperature=0.7,
            max_tokens=3500,
            system_prompt="You are an expert blog writer. Write in {{tone}} tone.",
            prompt_template=(
                "Write the complete article about \"{{topic}}\" following this outline:\n\n"
                "{{outline}}\n\n"
                "Goal of the article: {{article_goal}}\n"
                "Use the keywords naturally: {{keywords}}\n"
                "Additional instructions: {{custom_instructions}}\n\n"
                "Start with a short introduction before the first H2. Use Markdown headings "
                "and return the article only, without commentary."
            ),
            required_inputs=["tone", "topic", "outline", "article_goal", "keywords",
                             "custom_instructions"],
            outputs=["content"],
            timeout=90.0,
        ),
    ],
    post_processing=[_images(), SEO_STEP, PUBLISHING_STEP],
    rules=Rules(
        structure=StructureRules(min_h2_sections=3, max_h2_sections=10),
        content=ContentRules(use_absolute_urls=False),
    ),
    content_output="content",
)

# =========================
# PREMIUM
# =========================

PREMIUM_MODEL = WorkflowModel(
    id="premium",
    name="Premium Content Workflow",
    description="Structured multi-phase workflow with link planning, for premium and enterprise posts",
    quality_levels={QualityLevel.PREMIUM, QualityLevel.ENTERPRISE},
    phases=[
        Phase(
            id="pre_analysis",
            name="Pre-Generation Analysis",
            description="Identify internal linking opportunities",
            model="gpt-4o",
            temperature=0.3,
            max_tokens=2000,
            system_prompt="You are an SEO specialist who finds internal links that help readers.",
            prompt_template=(
                "Suggest 8-12 internal links for a blog post about \"{{topic}}\".\n\n"
                "Site: {{site_url}}\n"
                "Site context:\n{{site_context}}\n\n"
                "Keywords: {{keywords}}\n"
                "Audience: {{target_audience}}\n\n"
                "Return a JSON array of objects with keys url, anchor_text, "
                "relevance_score (1-10), placement and rationale. Use absolute URLs."
            ),
            required_inputs=["topic", "site_url", "site_context", "keywords", "target_audience"],
            outputs=["link_opportunities"],
        ),
        Phase(
            id="introduction",
            name="Introduction",
            model="gpt-4o",
            temperature=0.7,
            max_tokens=800,
            system_prompt="You write introductions that hook the reader in the first sentence.",
            prompt_template=(
                "Write the introduction of a blog post about \"{{topic}}\".\n\n"
                "Primary keyword: {{primary_keyword}}\n"
                "Audience: {{target_audience}}\n"
                "Tone: {{tone}}\n"
                "Goal: {{article_goal}}\n\n"
                "Write 2-3 short paragraphs: a hook, why the topic matters, and a preview of "
                "the article. Markdown only, no heading, no commentary."
            ),
            required_inputs=["topic", "primary_keyword", "target_audience", "tone", "article_goal"],
            outputs=["introduction"],
        ),
        Phase(
            id="outline",
            name="Outline",
            model="gpt-4o",
            temperature=0.5,
            max_tokens=1500,
            system_prompt="You are a content strategist who builds SEO-aware outlines.",
            prompt_template=(
                "Outline the body of the post \"{{topic}}\". The introduction is already written:\n\n"
                "{{introduction}}\n\n"
                "Primary keyword: {{primary_keyword}}\n"
                "Secondary keywords: {{secondary_keywords}}\n"
                "Target length: {{word_count}} words\n\n"
                "Link opportunities:\n{{link_opportunities}}\n\n"
                "Create 4-6 H2 sections with optional H3 subsections. Mark each planned link as "
                "[LINK: anchor -> url]. Do not include a conclusion."
            ),
            required_inputs=["topic", "introduction", "primary_keyword", "secondary_keywords",
                             "word_count", "link_opportunities"],
            outputs=["outline"],
        ),
        Phase(
            id="body",
            name="Body",
            model="gpt-4o",
            temperature=0.7,
            max_tokens=4000,
            system_prompt="You are an expert writer who integrates links without breaking the flow.",
            prompt_template=(
                "Write the body of \"{{topic}}\" following this outline exactly:\n\n{{outline}}\n\n"
                "Integrate these links:\n{{link_opportunities}}\n\n"
                "Rules: at most one link per H2 section, never two links in one paragraph, never links "
                "in consecutive paragraphs, 3-5 paragraphs per section, {{tone}} tone. "
                "Use ## for sections and [anchor](url) for links. No conclusion."
            ),
            required_inputs=["topic", "outline", "link_opportunities", "tone"],
            outputs=["body"],
            timeout=60.0,
        ),
        Phase(
            id="conclusion",
            name="Conclusion",
            model="gpt-4o",
            temperature=0.7,
            max_tokens=800,
            system_prompt="You write conclusions that leave readers with clear next steps.",
            prompt_template=(
                "Write the conclusion of \"{{topic}}\" for {{target_audience}}. The article covered:\n\n"
                "{{outline}}\n\n"
                "Start with '## Conclusion'. Write 200-350 words: reinforce the value, list 3-5 key "
                "takeaways as bullets starting with a bold verb, then one concrete next step. No links."
            ),
            required_inputs=["topic", "target_audience", "outline"],
            outputs=["conclusion"],
        ),
        Phase(
            id="assembly",
            name="Assembly",
            model="gpt-4o-mini",
            temperature=0.3,
            max_tokens=6000,
            system_prompt="You are an editor who assembles blog posts without adding content.",
            prompt_template=(
                "Assemble these parts into one Markdown article. Smooth the transitions, keep every "
                "link, keep the heading hierarchy consistent and return the article only.\n\n"
                "INTRODUCTION:\n{{introduction}}\n\nBODY:\n{{body}}\n\nCONCLUSION:\n{{conclusion}}"
            ),
            required_inputs=["introduction", "body", "conclusion"],
            outputs=["assembled_content"],
            max_retries=1,
            timeout=60.0,
        ),
    ],
    post_processing=[_images(), SEO_STEP, INTERLINKING_STEP, PUBLISHING_STEP],
    rules=Rules(
        link_distribution=LinkDistributionRules(
            internal_links=Range(min=4, max=6),
            external_links=Range(min=2, max=4),
            max_links_per_section=2,
            no_consecutive_links=True,
        ),
        structure=StructureRules(
            min_h2_sections=4,
            max_h2_sections=8,
            paragraphs_per_section=Range(min=3, max=5),
            introduction_paragraphs=Range(min=2, max=3),
            conclusion_word_count=Range(min=200, max=350),
        ),
        content=ContentRules(
            use_absolute_urls=True,
            actionable_takeaways=Range(min=3, max=5),
        ),
    ),
    content_output="assembled_content",
    author="content-team",
)

# =========================
# COMPARISON
# =========================

COMPARISON_MODEL = WorkflowModel(
    id="comparison",
    name="Product Comparison Workflow",
    description="Comparison and review articles with a mandatory comparison chart",
    quality_levels={QualityLevel.PREMIUM, QualityLevel.ENTERPRISE},
    content_types={"comparison", "review", "product", "versus", "best"},
    phases=[
        Phase(
            id="product_analysis",
            name="Product Analysis",
            model="gpt-4o",
            temperature=0.3,
            max_tokens=2500,
            system_prompt="You are a product analyst who compares products objectively.",
            prompt_template=(
                "Identify the 3-6 products most relevant to \"{{topic}}\" for {{target_audience}}.\n"
                "Keywords: {{keywords}}\n\n"
                "For each product give name, price range, key features, pros, cons, best-for and a "
                "rating out of 5. Return JSON: {\"products\": [...]}."
            ),
            required_inputs=["topic", "target_audience", "keywords"],
            outputs=["product_analysis"],
            timeout=45.0,
        ),
        Phase(
            id="comparison_chart",
            name="Comparison Chart",
            model="gpt-4o",
            temperature=0.3,
            max_tokens=1500,
            system_prompt="You build scannable Markdown comparison tables.",
            prompt_template=(
                "Using this analysis:\n\n{{product_analysis}}\n\n"
                "1. Write a Markdown table comparing every product on price, key feature, "
                "best for and rating.\n"
                f"2. Then output the line {QUICK_TAKE_DELIMITER}\n"
                "3. Then write a two-sentence quick take naming the overall winner."
            ),
            required_inputs=["product_analysis"],
            outputs=["comparison_chart", "quick_take"],
            output_split=OutputSplit(strategy="delimiter", delimiter=QUICK_TAKE_DELIMITER),
        ),
        Phase(
            id="introduction",
            name="Introduction",
            model="gpt-4o",
            temperature=0.7,
            max_tokens=800,
            system_prompt="You write introductions for buying guides that respect the reader's time.",
            prompt_template=(
                "Write a 2-3 paragraph introduction for \"{{topic}}\" aimed at {{target_audience}} "
                "in {{tone}} tone. Mention how the products were evaluated and end with this quick "
                "take:\n\n{{quick_take}}\n\nProducts:\n{{product_analysis}}"
            ),
            required_inputs=["topic", "target_audience", "tone", "quick_take", "product_analysis"],
            outputs=["introduction"],
        ),
        Phase(
            id="product_reviews",
            name="Product Reviews",
            model="gpt-4o",
            temperature=0.7,
            max_tokens=4000,
            system_prompt="You write honest, detailed product reviews.",
            prompt_template=(
                "Write a review section for each product of \"{{topic}}\":\n\n{{product_analysis}}\n\n"
                "Give every product its own ## heading with 2-5 paragraphs covering features, pros, "
                "cons and who it suits. Link to related pages where useful:\n{{site_context}}"
            ),
            required_inputs=["topic", "product_analysis", "site_context"],
            outputs=["product_reviews"],
            timeout=60.0,
        ),
        Phase(
            id="buying_guide",
            name="Buying Guide",
            model="gpt-4o",
            temperature=0.6,
            max_tokens=1500,
            system_prompt="You help readers choose between products.",
            prompt_template=(
                "Write a '## How to Choose' buying guide for \"{{topic}}\" aimed at "
                "{{target_audience}}, based on:\n\n{{product_analysis}}"
            ),
            required_inputs=["topic", "target_audience", "product_analysis"],
            outputs=["buying_guide"],
            timeout=45.0,
        ),
        Phase(
            id="faq",
            name="FAQ",
            model="gpt-4o",
            temperature=0.5,
            max_tokens=1200,
            system_prompt="You answer the questions buyers actually search for.",
            prompt_template=(
                "Write a '## Frequently Asked Questions' section with 4-6 questions about "
                "\"{{topic}}\" covering these keywords: {{keywords}}.\n\nProducts:\n{{product_analysis}}"
            ),
            required_inputs=["topic", "keywords", "product_analysis"],
            outputs=["faq"],
        ),
        Phase(
            id="assembly",
            name="Assembly",
            model="gpt-4o-mini",
            temperature=0.3,
            max_tokens=8000,
            system_prompt="You are an editor who assembles comparison articles for clarity.",
            prompt_template=(
                "Assemble the comparison article in this order: introduction, '## Quick Comparison' "
                "with the chart, the product reviews, the buying guide, the FAQ, and a "
                "'## Final Verdict' of 150-300 words ending with 3-5 bullet takeaways. Keep the "
                "table and every link intact.\n\n"
                "INTRODUCTION:\n{{introduction}}\n\nCHART:\n{{comparison_chart}}\n\n"
                "REVIEWS:\n{{product_reviews}}\n\nBUYING GUIDE:\n{{buying_guide}}\n\nFAQ:\n{{faq}}"
            ),
            required_inputs=["introduction", "comparison_chart", "product_reviews",
                             "buying_guide", "faq"],
            outputs=["assembled_content"],
            max_retries=1,
            timeout=60.0,
        ),
    ],
    post_processing=[_images(generate_content=True, max_content_images=3), SEO_STEP,
                     PUBLISHING_STEP],
    rules=Rules(
        link_distribution=LinkDistributionRules(
            internal_links=Range(min=4, max=8),
            external_links=Range(min=2, max=4),
            max_links_per_section=2,
            no_consecutive_links=True,
        ),
        structure=StructureRules(
            min_h2_sections=6,
            max_h2_sections=12,
            paragraphs_per_section=Range(min=2, max=5),
            introduction_paragraphs=Range(min=2, max=3),
            conclusion_word_count=Range(min=150, max=300),
        ),
        content=ContentRules(
            use_absolute_urls=True,
            include_comparison_chart=True,
            actionable_takeaways=Range(min=3, max=5),
        ),
    ),
    content_output="assembled_content",
    author="content-team",
)

BUILTIN_MODELS = [STANDARD_MODEL, PREMIUM_MODEL, COMPARISON_MODEL]
