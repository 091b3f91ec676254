"""Tests for workflow model registration."""

import pytest

from conftest import make_phase
from services.content_service.builtin_models import BUILTIN_MODELS
from services.content_service.errors import ConfigError
from services.content_service.models import (
    OutputSplit, PostProcessingStep, QualityLevel, StepType, WorkflowModel
)
from services.content_service.workflow_registry import WorkflowModelRegistry


def model_with(*phases, **kwargs) -> WorkflowModel:
    params = dict(id="m", name="Model", quality_levels={QualityLevel.HIGH}, phases=list(phases))
    params.update(kwargs)
    return WorkflowModel(**params)


class TestDependencySatisfiability:
    def test_accepts_inputs_from_seed_and_earlier_phases(self):
        registry = WorkflowModelRegistry()
        registry.register(model_with(
            make_phase("a", ["outline"], ["topic"]),
            make_phase("b", ["draft"], ["outline", "tone"]),
        ))
        assert registry.ids() == ["m"]
        assert registry.dependencies("m") == {"a": [], "b": ["a"]}
        assert registry.execution_order("m") == ["a", "b"]

    def test_rejects_input_produced_by_a_later_phase(self):
        registry = WorkflowModelRegistry()
        with pytest.raises(ConfigError) as exc_info:
            registry.register(model_with(
                make_phase("a", ["outline"], ["draft"]),
                make_phase("b", ["draft"], ["topic"]),
            ))
        assert exc_info.value.phase_id == "a"
        assert exc_info.value.key == "draft"
        assert "m" not in registry

    def test_rejects_unknown_input(self):
        registry = WorkflowModelRegistry()
        with pytest.raises(ConfigError, match="nonexistent"):
            registry.register(model_with(make_phase("a", ["x"], ["nonexistent"])))

    def test_additional_inputs_extend_the_seed(self):
        registry = WorkflowModelRegistry()
        registry.register(model_with(make_phase("a", ["x"], ["brand_voice"]),
                                     additional_inputs=["brand_voice"]))
        assert "m" in registry

    def test_phase_cannot_require_its_own_output(self):
        registry = WorkflowModelRegistry()
        with pytest.raises(ConfigError):
            registry.register(model_with(make_phase("a", ["x"], ["x"])))


class TestDefinitionChecks:
    def test_duplicate_phase_id(self):
        with pytest.raises(ConfigError, match="duplicate phase id"):
            WorkflowModelRegistry().register(model_with(
                make_phase("a", ["x"], ["topic"]), make_phase("a", ["y"], ["topic"]),
            ))

    def test_output_written_twice(self):
        with pytest.raises(ConfigError, match="already produced"):
            WorkflowModelRegistry().register(model_with(
                make_phase("a", ["x"], ["topic"]), make_phase("b", ["x"], ["topic"]),
            ))

    def test_output_shadowing_seed_key(self):
        with pytest.raises(ConfigError, match="shadows"):
            WorkflowModelRegistry().register(model_with(make_phase("a", ["topic"])))

    def test_multi_output_phase_needs_split_rule(self):
        with pytest.raises(ConfigError, match="split"):
            WorkflowModelRegistry().register(model_with(make_phase("a", ["x", "y"], ["topic"])))

    def test_multi_output_phase_with_split_rule(self):
        registry = WorkflowModelRegistry()
        registry.register(model_with(make_phase(
            "a", ["x", "y"], ["topic"], output_split=OutputSplit(strategy="json"),
        )))
        assert "m" in registry

    def test_template_must_only_reference_required_inputs(self):
        phase = make_phase("a", ["x"], ["topic"], prompt_template="{{topic}} {{tone}}")
        with pytest.raises(ConfigError, match="undeclared"):
            WorkflowModelRegistry().register(model_with(phase))

    def test_step_without_handler(self):
        registry = WorkflowModelRegistry(handler_types=[StepType.SEO_ENHANCEMENT])
        step = PostProcessingStep(id="img", type=StepType.IMAGE_GENERATION)
        with pytest.raises(ConfigError, match="no handler"):
            registry.register(model_with(make_phase("a", ["x"], ["topic"]), post_processing=[step]))

    def test_content_output_must_be_produced(self):
        with pytest.raises(ConfigError, match="content_output"):
            WorkflowModelRegistry().register(model_with(
                make_phase("a", ["x"], ["topic"]), content_output="article",
            ))

    def test_duplicate_model_id(self):
        registry = WorkflowModelRegistry()
        registry.register(model_with(make_phase("a", ["x"], ["topic"])))
        with pytest.raises(ConfigError, match="already registered"):
            registry.register(model_with(make_phase("a", ["x"], ["topic"])))


class TestCatalogue:
    def test_builtin_models_register(self):
        registry = WorkflowModelRegistry()
        registry.load_builtin_models()
        assert registry.ids() == [m.id for m in BUILTIN_MODELS]
        assert registry.default().id == "standard"

    def test_comparison_chart_phase_declares_two_outputs(self):
        registry = WorkflowModelRegistry()
        registry.load_builtin_models()
        chart = next(p for p in registry.get("comparison").phases if p.id == "comparison_chart")
        assert chart.outputs == ["comparison_chart", "quick_take"]

    def test_default_cannot_be_unregistered(self):
        registry = WorkflowModelRegistry()
        registry.load_builtin_models()
        with pytest.raises(ConfigError):
            registry.unregister("standard")
        assert registry.unregister("premium") is True
        assert registry.unregister("premium") is False

    def test_summaries_flag_default(self):
        registry = WorkflowModelRegistry()
        registry.load_builtin_models()
        summaries = {s.id: s for s in registry.summaries()}
        assert summaries["standard"].is_default
        assert not summaries["comparison"].is_default
        assert "comparison" in summaries["comparison"].content_types
