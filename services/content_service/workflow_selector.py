# workflow_selector.py - Workflow model selection
# This file picks the workflow model that best matches a request's quality level, content type and platform.

import logging
from typing import List, Optional, Union

from .errors import NoMatchingWorkflow
from .models import QualityLevel, WorkflowModel

logger = logging.getLogger(__name__)

SPECIFIC_MATCH = 2
GENERIC_MATCH = 1

def _normalize(label: Optional[str]) -> Optional[str]:
    return label.strip().lower() if label and label.strip() else None

def platform_allows(model: WorkflowModel, platform: Optional[str]) -> bool:
    """Models without platforms serve every platform."""
    return not platform or not model.platforms or platform in model.platforms

def match_score(model: WorkflowModel, quality_level: QualityLevel, content_type: Optional[str],
                platform: Optional[str] = None) -> int:
    """0 when the model does not apply; higher is a better match."""
    if quality_level not in model.quality_levels or not platform_allows(model, platform):
        return 0
    if model.is_generic:
        return GENERIC_MATCH
    if content_type and content_type in model.content_types:
        return SPECIFIC_MATCH
    return 0

def select(quality_level: Union[QualityLevel, str], content_type: Optional[str],
           models: List[WorkflowModel], default: Optional[WorkflowModel] = None,
           workflow_id: Optional[str] = None, platform: Optional[str] = None) -> WorkflowModel:
    """Choose a model from `models`, which must be in registration order.

    An explicit workflow_id wins when it names one of the models. Otherwise
    content-type matches beat generic ones and the most recently registered
    model wins a tie; models restricted to other platforms are passed over.
    With no match, a model dedicated to the requested platform is used before
    falling back to `default`.
    """
    quality_level = QualityLevel(quality_level)
    content_type = _normalize(content_type)
    platform = _normalize(platform)

    if workflow_id:
        for model in models:
            if model.id == workflow_id:
                logger.info(f"Selected workflow {model.id} by explicit id")
                return model
        logger.warning(f"Requested workflow '{workflow_id}' is not registered, selecting by match")

    best: Optional[WorkflowModel] = None
    best_score = 0
    for model in models:
        score = match_score(model, quality_level, content_type, platform)
        # >= so that later registrations win ties
        if score and score >= best_score:
            best, best_score = model, score

    if best is None and platform:
        best = next((m for m in reversed(models) if platform in m.platforms), None)
        if best is not None:
            logger.info(f"No workflow matches quality_level={quality_level.value}, "
                        f"content_type={content_type}; using {best.id} for platform {platform}")
            return best

    if best is not None:
        logger.info(
            f"Selected workflow {best.id} for quality_level={quality_level.value}, "
            f"content_type={content_type}, platform={platform}"
        )
        return best
    if default is not None:
        logger.info(f"No workflow matches quality_level={quality_level.value}, "
                    f"content_type={content_type}; using default {default.id}")
        return default
    raise NoMatchingWorkflow(quality_level.value, content_type)
