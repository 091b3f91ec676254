# rule_validator.py - Structural validation of assembled articles
# This file checks generated content against a workflow model's declarative rules.

import logging
from typing import Any, Dict, List, Optional

from .content_analysis import DocumentStructure, analyze, is_relative
from .models import Range, Rules, Severity, ValidationReport, Violation

logger = logging.getLogger(__name__)

COMPARISON_CHART_RULE = "content.include_comparison_chart"

class _ReportBuilder:
    def __init__(self, rules: Rules):
        self.rules = rules
        self.violations: List[Violation] = []
        self.metrics: Dict[str, Any] = {}

    def severity(self, rule: str) -> Severity:
        if rule == COMPARISON_CHART_RULE or rule in self.rules.mandatory_rules:
            return Severity.MANDATORY
        return Severity.ADVISORY

    def add(self, rule: str, detail: str):
        self.violations.append(Violation(rule=rule, severity=self.severity(rule), detail=detail))

    def check_range(self, rule: str, label: str, value: int, bounds: Optional[Range]):
        if bounds is None:
            return
        if value < bounds.min:
            self.add(rule, f"{label} is {value}, below the minimum of {bounds.min}")
        elif value > bounds.max:
            self.add(rule, f"{label} is {value}, above the maximum of {bounds.max}")

    def report(self) -> ValidationReport:
        return ValidationReport(violations=self.violations, metrics=self.metrics)

def _check_links(doc: DocumentStructure, rules: Rules, builder: _ReportBuilder):
    links = doc.links
    internal = sum(1 for link in links if link.internal)
    external = len(links) - internal
    builder.metrics["internal_links"] = internal
    builder.metrics["external_links"] = external

    dist = rules.link_distribution
    if dist is None:
        return
    builder.check_range("link_distribution.internal_links", "Internal link count",
                        internal, dist.internal_links)
    builder.check_range("link_distribution.external_links", "External link count",
                        external, dist.external_links)

    sections = [doc.introduction, *doc.sections]
    crowded = [(s.heading or "Introduction", len(s.links)) for s in sections
               if len(s.links) > dist.max_links_per_section]
    builder.metrics["max_links_in_section"] = max((len(s.links) for s in sections), default=0)
    for heading, count in crowded:
        builder.add("link_distribution.max_links_per_section",
                    f"Section '{heading}' has {count} links (max {dist.max_links_per_section})")

    if dist.no_consecutive_links:
        for section in [doc.introduction, *doc.sections]:
            blocks = [b for b in section.blocks if b.kind in ("paragraph", "list", "quote")]
            for previous, block in zip(blocks, blocks[1:]):
                if previous.links and block.links:
                    where = section.heading or "Introduction"
                    builder.add("link_distribution.no_consecutive_links",
                                f"Consecutive paragraphs with links in '{where}'")
                    break

def _check_structure(doc: DocumentStructure, rules: Rules, builder: _ReportBuilder):
    h2_count = len(doc.sections)
    intro_paragraphs = len(doc.introduction.paragraphs)
    conclusion = doc.conclusion
    builder.metrics["h2_sections"] = h2_count
    builder.metrics["introduction_paragraphs"] = intro_paragraphs
    builder.metrics["introduction_words"] = doc.introduction.word_count
    builder.metrics["conclusion_words"] = conclusion.word_count if conclusion else 0

    structure = rules.structure
    if structure is None:
        return
    if h2_count < structure.min_h2_sections or h2_count > structure.max_h2_sections:
        builder.add("structure.h2_sections",
                    f"Found {h2_count} H2 sections, expected "
                    f"{structure.min_h2_sections}-{structure.max_h2_sections}")

    if structure.paragraphs_per_section is not None:
        bounds = structure.paragraphs_per_section
        for section in doc.sections:
            if section is conclusion and structure.conclusion_word_count is not None:
                continue
            count = len(section.paragraphs)
            if not bounds.contains(count):
                builder.add("structure.paragraphs_per_section",
                            f"Section '{section.heading}' has {count} paragraphs, "
                            f"expected {bounds.min}-{bounds.max}")

    builder.check_range("structure.introduction_paragraphs", "Introduction paragraph count",
                        intro_paragraphs, structure.introduction_paragraphs)
    builder.check_range("structure.introduction_word_count", "Introduction word count",
                        doc.introduction.word_count, structure.introduction_word_count)
    if structure.conclusion_word_count is not None:
        if conclusion is None:
            builder.add("structure.conclusion_word_count", "No conclusion section found")
        else:
            builder.check_range("structure.conclusion_word_count", "Conclusion word count",
                                conclusion.word_count, structure.conclusion_word_count)

def _check_content(doc: DocumentStructure, rules: Rules, builder: _ReportBuilder):
    builder.metrics["tables"] = doc.tables
    builder.metrics["word_count"] = doc.word_count
    content_rules = rules.content
    if content_rules is None:
        return

    if content_rules.use_absolute_urls:
        relative = [link.url for link in doc.links if is_relative(link.url)]
        builder.metrics["relative_links"] = len(relative)
        if relative:
            builder.add("content.use_absolute_urls",
                        f"{len(relative)} relative link(s): {', '.join(relative[:5])}")

    if content_rules.include_comparison_chart and doc.tables == 0:
        builder.add(COMPARISON_CHART_RULE, "Comparison chart (Markdown table) is required but missing")

    if content_rules.actionable_takeaways is not None:
        conclusion = doc.conclusion
        takeaways = conclusion.list_items if conclusion else 0
        builder.metrics["actionable_takeaways"] = takeaways
        builder.check_range("content.actionable_takeaways", "Actionable takeaway count",
                            takeaways, content_rules.actionable_takeaways)

    builder.check_range("content.word_count", "Word count", doc.word_count, content_rules.word_count)

def validate(content: str, rules: Rules, site_url: Optional[str] = None) -> ValidationReport:
    """Evaluate rules against rendered content. Pure and idempotent."""
    doc = analyze(content, site_url)
    builder = _ReportBuilder(rules)
    _check_links(doc, rules, builder)
    _check_structure(doc, rules, builder)
    _check_content(doc, rules, builder)
    report = builder.report()
    logger.info(
        f"Validation finished: {len(report.mandatory)} mandatory, "
        f"{len(report.advisory)} advisory violations"
    )
    return report
