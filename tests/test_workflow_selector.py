"""Tests for workflow model selection."""

import pytest

from conftest import make_phase
from services.content_service.errors import NoMatchingWorkflow
from services.content_service.models import QualityLevel, WorkflowModel
from services.content_service.workflow_registry import WorkflowModelRegistry
from services.content_service.workflow_selector import select


def model(model_id, levels, content_types=(), platforms=()):
    return WorkflowModel(
        id=model_id,
        name=model_id,
        quality_levels=set(levels),
        content_types=set(content_types),
        platforms=set(platforms),
        phases=[make_phase("p", ["content"], ["topic"])],
    )


@pytest.fixture
def registry():
    registry = WorkflowModelRegistry()
    registry.load_builtin_models()
    return registry


def choose(registry, level, content_type=None, workflow_id=None):
    return select(level, content_type, registry.all(), registry.default(), workflow_id)


class TestBuiltinSelection:
    def test_premium_comparison_picks_comparison_model(self, registry):
        assert choose(registry, QualityLevel.PREMIUM, "comparison").id == "comparison"

    def test_content_type_is_case_insensitive(self, registry):
        assert choose(registry, "enterprise", "  Versus ").id == "comparison"

    def test_premium_without_content_type_picks_generic_premium(self, registry):
        assert choose(registry, QualityLevel.PREMIUM).id == "premium"

    def test_premium_unknown_content_type_falls_back_to_generic(self, registry):
        assert choose(registry, QualityLevel.PREMIUM, "how_to").id == "premium"

    def test_medium_comparison_uses_standard(self, registry):
        assert choose(registry, QualityLevel.MEDIUM, "comparison").id == "standard"

    def test_explicit_workflow_id_wins(self, registry):
        assert choose(registry, QualityLevel.LOW, workflow_id="premium").id == "premium"

    def test_unknown_workflow_id_selects_by_match(self, registry):
        assert choose(registry, QualityLevel.LOW, workflow_id="nope").id == "standard"


class TestRules:
    def test_latest_registration_wins_tie(self):
        first = model("first", [QualityLevel.HIGH])
        second = model("second", [QualityLevel.HIGH])
        assert select(QualityLevel.HIGH, None, [first, second]).id == "second"

    def test_specific_beats_generic_regardless_of_order(self):
        specific = model("specific", [QualityLevel.HIGH], ["review"])
        generic = model("generic", [QualityLevel.HIGH])
        assert select(QualityLevel.HIGH, "review", [specific, generic]).id == "specific"

    def test_default_when_nothing_matches(self):
        only = model("only", [QualityLevel.LOW])
        fallback = model("fallback", [QualityLevel.ENTERPRISE])
        assert select(QualityLevel.HIGH, None, [only], default=fallback).id == "fallback"

    def test_no_match_and_no_default_raises(self):
        with pytest.raises(NoMatchingWorkflow):
            select(QualityLevel.HIGH, None, [model("only", [QualityLevel.LOW])])

    def test_deterministic(self):
        models = [model("a", [QualityLevel.HIGH]), model("b", [QualityLevel.HIGH], ["best"])]
        picks = {select(QualityLevel.HIGH, "best", models).id for _ in range(5)}
        assert picks == {"b"}


class TestPlatforms:
    def test_platform_restricted_model_skipped_for_other_platforms(self):
        webflow = model("webflow", [QualityLevel.HIGH], platforms=["Webflow"])
        generic = model("generic", [QualityLevel.HIGH])
        assert select(QualityLevel.HIGH, None, [generic, webflow], platform="wordpress").id == "generic"
        assert select(QualityLevel.HIGH, None, [generic, webflow], platform=" WEBFLOW ").id == "webflow"

    def test_platform_filters_content_type_matches(self):
        webflow_review = model("webflow-review", [QualityLevel.HIGH], ["review"], ["webflow"])
        generic = model("generic", [QualityLevel.HIGH])
        picked = select(QualityLevel.HIGH, "review", [webflow_review, generic], platform="shopify")
        assert picked.id == "generic"

    def test_unrestricted_models_serve_any_platform(self):
        only = model("only", [QualityLevel.LOW])
        assert select(QualityLevel.LOW, None, [only], platform="webflow").id == "only"

    def test_no_platform_ignores_restrictions(self):
        webflow = model("webflow", [QualityLevel.HIGH], platforms=["webflow"])
        assert select(QualityLevel.HIGH, None, [webflow]).id == "webflow"

    def test_platform_model_used_before_default(self):
        webflow = model("webflow", [QualityLevel.ENTERPRISE], platforms=["webflow"])
        fallback = model("fallback", [QualityLevel.LOW])
        picked = select(QualityLevel.HIGH, None, [webflow, fallback], default=fallback, platform="webflow")
        assert picked.id == "webflow"
        assert select(QualityLevel.HIGH, None, [webflow, fallback], default=fallback).id == "fallback"
