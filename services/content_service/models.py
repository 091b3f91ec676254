# models.py - Workflow model definitions and run results
# This file defines the declarative workflow model types and the records produced by a run.

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator
from typing import Dict, List, Optional, Any, FrozenSet, Literal
from datetime import datetime
from enum import Enum
import uuid

class QualityLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    PREMIUM = "premium"
    ENTERPRISE = "enterprise"

class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    PARTIALLY_FAILED = "partially_failed"
    FAILED = "failed"
    CANCELLED = "cancelled"

class PhaseStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"

class StepStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"

class StepType(str, Enum):
    IMAGE_GENERATION = "image_generation"
    SEO_ENHANCEMENT = "seo_enhancement"
    INTERLINKING = "interlinking"
    PUBLISHING_PREP = "publishing_prep"

class Severity(str, Enum):
    MANDATORY = "mandatory"
    ADVISORY = "advisory"

# =========================
# WORKFLOW DEFINITIONS
# =========================

class OutputSplit(BaseModel):
    """How a multi-output phase divides one response into its declared outputs."""
    model_config = ConfigDict(frozen=True, extra="forbid")

    strategy: Literal["json", "delimiter"]
    delimiter: Optional[str] = None

    @model_validator(mode="after")
    def check_delimiter(self) -> "OutputSplit":
        if self.strategy == "delimiter" and not self.delimiter:
            raise ValueError("delimiter strategy requires a non-empty delimiter")
        return self

class Phase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(min_length=1)
    name: str = ""
    description: str = ""
    model: str  # LLM identifier, e.g. "gpt-4o"
    temperature: float = Field(default=0.7, ge=0, le=2)
    max_tokens: int = Field(default=1000, gt=0)
    system_prompt: str = ""
    prompt_template: str
    required_inputs: List[str] = Field(default_factory=list)
    outputs: List[str] = Field(min_length=1)
    output_split: Optional[OutputSplit] = None
    stop: List[str] = Field(default_factory=list)
    retry_on_failure: bool = True
    max_retries: int = Field(default=2, ge=0)
    timeout: float = Field(default=30.0, gt=0)  # seconds

    @field_validator("required_inputs", "outputs")
    @classmethod
    def check_unique(cls, v):
        if len(set(v)) != len(v):
            raise ValueError(f"names must be unique, got {v}")
        return v

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1 if self.retry_on_failure else 1

class PostProcessingStep(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(min_length=1)
    name: str = ""
    type: StepType
    enabled: bool = True
    config: Dict[str, Any] = Field(default_factory=dict)

class Range(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    min: int = Field(default=0, ge=0)
    max: int = Field(ge=0)

    @model_validator(mode="after")
    def check_bounds(self) -> "Range":
        if self.min > self.max:
            raise ValueError(f"min ({self.min}) must not exceed max ({self.max})")
        return self

    def contains(self, value: int) -> bool:
        return self.min <= value <= self.max

class LinkDistributionRules(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    internal_links: Range
    external_links: Range
    max_links_per_section: int = Field(default=2, ge=0)
    no_consecutive_links: bool = True

class StructureRules(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    min_h2_sections: int = Field(default=0, ge=0)
    max_h2_sections: int = Field(default=20, ge=0)
    paragraphs_per_section: Optional[Range] = None
    introduction_paragraphs: Optional[Range] = None
    introduction_word_count: Optional[Range] = None
    conclusion_word_count: Optional[Range] = None

    @model_validator(mode="after")
    def check_h2_bounds(self) -> "StructureRules":
        if self.min_h2_sections > self.max_h2_sections:
            raise ValueError("min_h2_sections must not exceed max_h2_sections")
        return self

class ContentRules(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    use_absolute_urls: bool = False
    include_comparison_chart: bool = False
    actionable_takeaways: Optional[Range] = None
    word_count: Optional[Range] = None

class Rules(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    link_distribution: Optional[LinkDistributionRules] = None
    structure: Optional[StructureRules] = None
    content: Optional[ContentRules] = None
    # Rule names escalated to mandatory; the comparison chart rule always is.
    mandatory_rules: FrozenSet[str] = Field(default_factory=frozenset)

class WorkflowModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(min_length=1)
    name: str
    description: str = ""
    version: str = "1.0.0"
    quality_levels: FrozenSet[QualityLevel] = Field(min_length=1)
    content_types: FrozenSet[str] = Field(default_factory=frozenset)
    platforms: FrozenSet[str] = Field(default_factory=frozenset)
    phases: List[Phase] = Field(min_length=1)
    post_processing: List[PostProcessingStep] = Field(default_factory=list)
    rules: Rules = Field(default_factory=Rules)
    content_output: Optional[str] = None
    additional_inputs: List[str] = Field(default_factory=list)
    author: str = "system"

    @field_validator("content_types", "platforms", mode="before")
    @classmethod
    def normalize_labels(cls, v):
        return frozenset(str(t).strip().lower() for t in (v or []))

    @property
    def is_generic(self) -> bool:
        return not self.content_types

class WorkflowSummary(BaseModel):
    id: str
    name: str
    description: str
    version: str
    quality_levels: List[QualityLevel]
    content_types: List[str]
    platforms: List[str] = Field(default_factory=list)
    phase_ids: List[str]
    post_processing: List[StepType]
    is_default: bool = False

# =========================
# RUN INPUTS
# =========================

class SeedParameters(BaseModel):
    """Caller-supplied generation parameters. Extra keys become extra seed values."""
    model_config = ConfigDict(extra="allow")

    topic: str = Field(min_length=1)
    keywords: List[str] = Field(default_factory=list)
    primary_keyword: Optional[str] = None
    secondary_keywords: Optional[List[str]] = None
    target_audience: str = "general audience"
    tone: str = "professional"
    word_count: int = Field(default=1500, gt=0)
    article_goal: str = "inform and engage"
    site_context: str = ""
    site_url: Optional[str] = None
    custom_instructions: str = ""

    def to_context(self) -> Dict[str, Any]:
        """Flatten into the seed values templates reference."""
        keywords = [k.strip() for k in self.keywords if k and k.strip()]
        secondary = self.secondary_keywords if self.secondary_keywords is not None else keywords[1:]
        seed = {
            "topic": self.topic,
            "keywords": ", ".join(keywords),
            "primary_keyword": self.primary_keyword or (keywords[0] if keywords else ""),
            "secondary_keywords": ", ".join(secondary),
            "target_audience": self.target_audience,
            "tone": self.tone,
            "word_count": self.word_count,
            "article_goal": self.article_goal,
            "site_context": self.site_context,
            "site_url": self.site_url or "",
            "custom_instructions": self.custom_instructions,
        }
        for key, value in (self.model_extra or {}).items():
            if not key.startswith("_") and key not in seed:
                seed[key] = value
        return seed

STANDARD_SEED_KEYS: FrozenSet[str] = frozenset(
    name for name in SeedParameters.model_fields
)

class GenerationRequest(BaseModel):
    quality_level: QualityLevel
    content_type: Optional[str] = None
    platform: Optional[str] = None
    workflow_id: Optional[str] = None
    seed: SeedParameters

class SelectionRequest(BaseModel):
    quality_level: QualityLevel
    content_type: Optional[str] = None
    platform: Optional[str] = None
    workflow_id: Optional[str] = None

# =========================
# RUN RESULTS
# =========================

class PhaseResult(BaseModel):
    phase_id: str
    status: PhaseStatus
    attempts: int = 0
    tokens_used: int = 0
    duration_ms: int = 0
    model: Optional[str] = None
    outputs_written: List[str] = Field(default_factory=list)
    error: Optional[str] = None

class Violation(BaseModel):
    rule: str
    severity: Severity
    detail: str

class ValidationReport(BaseModel):
    violations: List[Violation] = Field(default_factory=list)
    metrics: Dict[str, Any] = Field(default_factory=dict)

    @property
    def mandatory(self) -> List[Violation]:
        return [v for v in self.violations if v.severity == Severity.MANDATORY]

    @property
    def advisory(self) -> List[Violation]:
        return [v for v in self.violations if v.severity == Severity.ADVISORY]

    @computed_field
    @property
    def passed(self) -> bool:
        return not self.mandatory

class StepResult(BaseModel):
    step_id: str
    step_type: StepType
    status: StepStatus
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    duration_ms: int = 0

    @computed_field
    @property
    def success(self) -> bool:
        return self.status == StepStatus.SUCCEEDED

class HeadingInfo(BaseModel):
    level: int
    text: str
    id: str

class LinkInfo(BaseModel):
    url: str
    text: str
    type: Literal["internal", "external"]

class ContentMetadata(BaseModel):
    word_count: int = 0
    reading_time_minutes: int = 0
    headings: List[HeadingInfo] = Field(default_factory=list)
    links: List[LinkInfo] = Field(default_factory=list)
    excerpt: str = ""

class Artifact(BaseModel):
    """The assembled article as seen by post-processing handlers."""

    run_id: str
    workflow_id: str
    content: str
    title: str
    keywords: List[str] = Field(default_factory=list)
    site_url: Optional[str] = None
    context: Dict[str, Any] = Field(default_factory=dict)
    metadata: ContentMetadata = Field(default_factory=ContentMetadata)
    validation_report: ValidationReport = Field(default_factory=ValidationReport)
    enrichments: Dict[str, Dict[str, Any]] = Field(default_factory=dict)

class RunResult(BaseModel):
    run_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    workflow_id: str
    status: RunStatus = RunStatus.PENDING
    content: Optional[str] = None
    phase_results: List[PhaseResult] = Field(default_factory=list)
    validation_report: Optional[ValidationReport] = None
    post_processing_results: List[StepResult] = Field(default_factory=list)
    metadata: Optional[ContentMetadata] = None
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @computed_field
    @property
    def total_tokens(self) -> int:
        return sum(r.tokens_used for r in self.phase_results)
