# errors.py - Error taxonomy for the content workflow engine
# This file defines the exceptions raised by registration, selection, phase execution and collaborators.

from typing import List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .models import PhaseResult

class ContentWorkflowError(Exception):
    """Base class for all workflow engine errors."""

class ConfigError(ContentWorkflowError):
    """A workflow model definition is invalid. Raised at registration time."""

    def __init__(self, model_id: str, message: str, phase_id: Optional[str] = None,
                 key: Optional[str] = None):
        self.model_id = model_id
        self.phase_id = phase_id
        self.key = key
        location = f"model '{model_id}'"
        if phase_id:
            location += f", phase '{phase_id}'"
        super().__init__(f"Invalid workflow {location}: {message}")

class NoMatchingWorkflow(ContentWorkflowError):
    """No registered model matches the request and no default is configured."""

    def __init__(self, quality_level: str, content_type: Optional[str]):
        self.quality_level = quality_level
        self.content_type = content_type
        super().__init__(
            f"No workflow model matches quality_level={quality_level!r}, "
            f"content_type={content_type!r} and no default model is configured"
        )

class MissingSeedInput(ContentWorkflowError):
    """The caller did not supply seed parameters the selected model needs."""

    def __init__(self, model_id: str, missing: List[str]):
        self.model_id = model_id
        self.missing = missing
        super().__init__(
            f"Workflow '{model_id}' is missing seed inputs: {', '.join(missing)}"
        )

class InterpolationError(ContentWorkflowError):
    """A template references a variable that is not in the execution context."""

    def __init__(self, variable: str, phase_id: Optional[str] = None):
        self.variable = variable
        self.phase_id = phase_id
        where = f" in phase '{phase_id}'" if phase_id else ""
        super().__init__(f"Template variable '{variable}' is undefined{where}")

class PhaseError(ContentWorkflowError):
    """A phase failed after exhausting its retry policy."""

    def __init__(self, phase_id: str, message: str, result: Optional["PhaseResult"] = None):
        self.phase_id = phase_id
        self.result = result
        super().__init__(f"Phase '{phase_id}' failed: {message}")

class RunCancelled(ContentWorkflowError):
    """The run was cancelled or its deadline passed."""

class PostProcessingStepError(ContentWorkflowError):
    """A post-processing handler could not complete. Never fatal for the run."""

    def __init__(self, step_id: str, message: str):
        self.step_id = step_id
        super().__init__(f"Post-processing step '{step_id}' failed: {message}")

# LLM collaborator errors

class LLMError(ContentWorkflowError):
    """Base class for LLM completion failures."""

class LLMTransientError(LLMError):
    """Timeout, 5xx, rate limiting or connection failure. Safe to retry."""

class LLMRequestError(LLMError):
    """The backend rejected the request (4xx). Retrying will not help."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)

class LLMResponseError(LLMError):
    """The backend answered with a body we cannot interpret."""

class ImageGenerationError(ContentWorkflowError):
    """The image backend failed or returned no image."""
