# post_processing.py - Post-processing pipeline for generated articles
# This file defines the handler interface, the built-in handlers and the runner that applies a model's steps.

import json
import logging
import re
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional

from slugify import slugify

from .content_analysis import analyze, readability_score
from .errors import ImageGenerationError, PostProcessingStepError
from .image_client import ImageClient
from .models import Artifact, PostProcessingStep, StepResult, StepStatus, StepType
from .phase_executor import parse_json_block

logger = logging.getLogger(__name__)

META_TITLE_LENGTH = 60
META_DESCRIPTION_LENGTH = 160
ALT_TEXT_LENGTH = 125
SHORT_CONTENT_WORDS = 800

SCORE_WEIGHTS = {
    "seo": 0.3,
    "quality": 0.25,
    "readability": 0.2,
    "interlinking": 0.15,
    "images": 0.1,
}

class PostProcessingHandler(ABC):
    step_type: StepType

    @abstractmethod
    async def run(self, artifact: Artifact, config: Dict[str, Any]) -> Dict[str, Any]:
        """Enrich the artifact. Raise to mark the step failed."""
        pass

def truncate(text: str, limit: int) -> str:
    """Cut at a word boundary and append an ellipsis when over limit."""
    text = " ".join(text.split())
    if len(text) <= limit:
        return text
    cut = text[: limit - 3].rsplit(" ", 1)[0].rstrip(",;:.")
    return cut + "..."

def keyword_density(text: str, keywords: List[str]) -> Dict[str, float]:
    words = len(text.split())
    lowered = text.lower()
    density = {}
    for keyword in keywords:
        if not words:
            density[keyword] = 0.0
            continue
        matches = len(re.findall(re.escape(keyword.lower()), lowered))
        density[keyword] = round(matches / words * 100, 2)
    return density

def seo_score(title: str, meta_description: str, keywords: List[str], missing: List[str],
              word_count: int, headings: int, links: int) -> int:
    score = 0
    if 30 <= len(title) <= META_TITLE_LENGTH:
        score += 15
    elif title:
        score += 8
    if 120 <= len(meta_description) <= META_DESCRIPTION_LENGTH:
        score += 15
    elif meta_description:
        score += 8
    if keywords and keywords[0].lower() in title.lower():
        score += 15
    if keywords:
        score += round(15 * (len(keywords) - len(missing)) / len(keywords))
    else:
        score += 15
    score += 15 if word_count >= 1000 else round(15 * word_count / 1000)
    score += 15 if headings >= 3 else 5 * headings
    score += 10 if links >= 2 else 5 * links
    return min(100, score)

class ImageGenerationHandler(PostProcessingHandler):
    """Featured image (and optional per-section images) for the article."""

    step_type = StepType.IMAGE_GENERATION

    def __init__(self, image_client: Optional[ImageClient] = None):
        self.image_client = image_client

    def _spec(self, subject: str, topic: str, style: str, placement: str) -> Dict[str, Any]:
        return {
            "placement": placement,
            "prompt": f"{subject}. Topic: {topic}. Style: {style}, professional, high quality, no text",
            "alt_text": truncate(subject, ALT_TEXT_LENGTH),
            "url": None,
            "rendered": False,
        }

    async def run(self, artifact: Artifact, config: Dict[str, Any]) -> Dict[str, Any]:
        style = config.get("style", "photographic")
        aspect_ratio = config.get("aspect_ratio", "16:9")
        quality = config.get("quality", "high")
        topic = artifact.context.get("topic") or artifact.title

        featured = None
        if config.get("generate_featured", True):
            featured = self._spec(artifact.title, topic, style, "featured")
        sections = []
        if config.get("generate_content", False):
            limit = int(config.get("max_content_images", 3))
            h2 = [h for h in artifact.metadata.headings if h.level == 2]
            for heading in h2[:limit]:
                spec = self._spec(heading.text, topic, style, f"section:{heading.id}")
                sections.append(spec)

        if self.image_client is None:
            logger.info(f"No image backend configured, returning {len(sections) + bool(featured)} image spec(s)")
            return {"featured_image": featured, "content_images": sections}

        if featured:
            try:
                image = await self.image_client.generate(featured["prompt"], style, aspect_ratio, quality)
            except ImageGenerationError as e:
                raise PostProcessingStepError(self.step_type.value, f"featured image: {str(e)}")
            featured.update(url=image["image_url"], rendered=True)
        for spec in sections:
            try:
                image = await self.image_client.generate(spec["prompt"], style, aspect_ratio, quality)
                spec.update(url=image["image_url"], rendered=True)
            except ImageGenerationError as e:
                logger.warning(f"Section image for {spec['placement']} failed: {str(e)}")
                spec["error"] = str(e)
        return {"featured_image": featured, "content_images": sections}

class SEOEnhancementHandler(PostProcessingHandler):
    step_type = StepType.SEO_ENHANCEMENT

    async def run(self, artifact: Artifact, config: Dict[str, Any]) -> Dict[str, Any]:
        doc = analyze(artifact.content, artifact.site_url)
        keywords = [k for k in artifact.keywords if k]
        lowered = doc.plain_text.lower()
        missing = [k for k in keywords if k.lower() not in lowered]

        meta_title = truncate(artifact.title, META_TITLE_LENGTH)
        meta_description = truncate(artifact.metadata.excerpt or doc.plain_text, META_DESCRIPTION_LENGTH)
        featured = (artifact.enrichments.get(StepType.IMAGE_GENERATION.value) or {}).get("featured_image")

        return {
            "meta_title": meta_title,
            "meta_description": meta_description,
            "excerpt": meta_description,
            "slug": slugify(artifact.title, max_length=int(config.get("slug_length", 80)),
                            word_boundary=True),
            "keywords": keywords,
            "keyword_density": keyword_density(doc.plain_text, keywords),
            "missing_keywords": missing,
            "readability_score": readability_score(doc.plain_text),
            "seo_score": seo_score(meta_title, meta_description, keywords, missing,
                                   doc.word_count, len(doc.headings), len(doc.links)),
            "featured_image_alt": featured["alt_text"] if featured else None,
        }

def _load_opportunities(raw: Any) -> List[Dict[str, Any]]:
    if raw is None or raw == "":
        return []
    if isinstance(raw, str):
        try:
            raw = parse_json_block(raw)
        except json.JSONDecodeError as e:
            raise PostProcessingStepError("interlinking", f"link opportunities are not JSON: {str(e)}")
    if isinstance(raw, dict):
        raw = raw.get("opportunities") or raw.get("links") or []
    if not isinstance(raw, list):
        raise PostProcessingStepError("interlinking", "link opportunities must be a list")

    opportunities = []
    for item in raw:
        if not isinstance(item, dict) or not item.get("url"):
            continue
        opportunities.append({
            "url": str(item["url"]).strip(),
            "anchor_text": item.get("anchor_text") or item.get("anchorText") or item.get("anchor") or "",
            "relevance_score": item.get("relevance_score", item.get("relevanceScore", 0)),
            "placement": item.get("placement"),
        })
    return opportunities

def _normalize_url(url: str) -> str:
    return url.strip().rstrip("/").lower()

class InterlinkingHandler(PostProcessingHandler):
    """Reports which planned internal links made it into the article."""

    step_type = StepType.INTERLINKING

    async def run(self, artifact: Artifact, config: Dict[str, Any]) -> Dict[str, Any]:
        source = config.get("opportunities")
        if source is None:
            source = artifact.context.get(config.get("context_key", "link_opportunities"))
        opportunities = _load_opportunities(source)

        doc = analyze(artifact.content, artifact.site_url)
        present = {_normalize_url(link.url) for link in doc.links}
        linked = [o for o in opportunities if _normalize_url(o["url"]) in present]
        unlinked = [o for o in opportunities if _normalize_url(o["url"]) not in present]
        unlinked.sort(key=lambda o: o["relevance_score"] or 0, reverse=True)

        internal = sum(1 for link in doc.links if link.internal)
        return {
            "opportunities": len(opportunities),
            "linked": linked,
            "unlinked": unlinked,
            "internal_links": internal,
            "external_links": len(doc.links) - internal,
        }

class PublishingPrepHandler(PostProcessingHandler):
    """Scores the article and decides whether it is ready to publish."""

    step_type = StepType.PUBLISHING_PREP

    async def run(self, artifact: Artifact, config: Dict[str, Any]) -> Dict[str, Any]:
        doc = analyze(artifact.content, artifact.site_url)
        seo = artifact.enrichments.get(StepType.SEO_ENHANCEMENT.value) or {}
        images = artifact.enrichments.get(StepType.IMAGE_GENERATION.value) or {}
        featured = images.get("featured_image") or {}

        internal = sum(1 for link in doc.links if link.internal)
        external = len(doc.links) - internal
        readability = seo.get("readability_score", readability_score(doc.plain_text))
        seo_value = seo.get("seo_score")
        if seo_value is None:
            seo_value = seo_score(artifact.title, artifact.metadata.excerpt, artifact.keywords,
                                  [], doc.word_count, len(doc.headings), len(doc.links))
        structure = min(100.0, (
            (20 if len(doc.headings) >= 3 else len(doc.headings) * 6.67)
            + (20 if len(doc.links) >= 2 else len(doc.links) * 10)
            + (20 if featured.get("url") else 0)
            + (40 if doc.word_count >= 1000 else doc.word_count / 25)
        ))
        scores = {
            "seo": seo_value,
            "readability": readability,
            "quality": round((readability + seo_value) / 2 * 0.6 + structure * 0.4),
            "interlinking": min(100, internal * 15 + external * 10),
            "images": 80 if featured.get("url") else 30,
        }
        overall = round(sum(scores[name] * weight for name, weight in SCORE_WEIGHTS.items()))

        missing_fields = []
        if not artifact.title:
            missing_fields.append("title")
        if len(artifact.content) < 100:
            missing_fields.append("content")
        if not seo.get("slug"):
            missing_fields.append("slug")

        warnings = []
        if not seo.get("meta_description"):
            warnings.append("Missing meta description")
        if not featured.get("url"):
            warnings.append("No featured image")
        if internal == 0:
            warnings.append("No internal links")
        if doc.word_count < SHORT_CONTENT_WORDS:
            warnings.append(f"Content is short ({doc.word_count} words)")
        if seo_value < 60:
            warnings.append(f"SEO score is low ({seo_value})")
        for violation in artifact.validation_report.violations:
            warnings.append(f"[{violation.severity.value}] {violation.rule}: {violation.detail}")

        ready = (not missing_fields and overall >= int(config.get("min_overall_score", 50))
                 and artifact.validation_report.passed)
        logger.info(f"Run {artifact.run_id} publishing readiness: ready={ready}, overall={overall}")
        return {
            "metadata": artifact.metadata.model_dump(),
            "scores": {**scores, "overall": overall},
            "warnings": warnings,
            "missing_fields": missing_fields,
            "ready": ready,
        }

class PostProcessingRunner:
    """Runs a model's post-processing steps in order; a failing step never stops the next."""

    def __init__(self, handlers: Iterable[PostProcessingHandler]):
        self.handlers: Dict[StepType, PostProcessingHandler] = {h.step_type: h for h in handlers}

    @classmethod
    def with_builtin_handlers(cls, image_client: Optional[ImageClient] = None) -> "PostProcessingRunner":
        return cls([
            ImageGenerationHandler(image_client),
            SEOEnhancementHandler(),
            InterlinkingHandler(),
            PublishingPrepHandler(),
        ])

    @property
    def handler_types(self) -> List[StepType]:
        return list(self.handlers)

    async def run(self, steps: List[PostProcessingStep], artifact: Artifact) -> List[StepResult]:
        results = []
        for step in steps:
            if not step.enabled:
                results.append(StepResult(step_id=step.id, step_type=step.type, status=StepStatus.SKIPPED))
                continue

            handler = self.handlers.get(step.type)
            if handler is None:
                results.append(StepResult(step_id=step.id, step_type=step.type, status=StepStatus.FAILED,
                                          error=f"No handler registered for {step.type.value}"))
                continue

            start_time = time.monotonic()
            try:
                data = await handler.run(artifact, dict(step.config))
                artifact.enrichments[step.type.value] = data
                results.append(StepResult(
                    step_id=step.id, step_type=step.type, status=StepStatus.SUCCEEDED, data=data,
                    duration_ms=int((time.monotonic() - start_time) * 1000),
                ))
                logger.info(f"Post-processing step {step.id} completed for run {artifact.run_id}")
            except Exception as e:
                logger.error(f"Post-processing step {step.id} failed for run {artifact.run_id}: {str(e)}")
                results.append(StepResult(
                    step_id=step.id, step_type=step.type, status=StepStatus.FAILED, error=str(e),
                    duration_ms=int((time.monotonic() - start_time) * 1000),
                ))
        return results
