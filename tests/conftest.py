"""Pytest fixtures for content service tests."""

import asyncio
from typing import Any, Dict, List

import pytest

from services.content_service.llm_client import LLMRequest, LLMResponse, LLMUsage
from services.content_service.models import (
    ContentRules, Phase, QualityLevel, Rules, StructureRules, WorkflowModel
)
from services.content_service.phase_executor import PhaseExecutor
from services.content_service.post_processing import PostProcessingRunner
from services.content_service.workflow_engine import WorkflowEngine
from services.content_service.workflow_registry import WorkflowModelRegistry

HANG = object()

class FakeLLMClient:
    """Scripted LLM client keyed by the request's model name.

    Each script entry is a list consumed in order; the last entry repeats.
    Entries are response text, an exception instance to raise, or HANG.
    """

    backends = ("scripted",)

    def __init__(self, script: Dict[str, List[Any]]):
        self.script = {model: list(entries) for model, entries in script.items()}
        self.requests: List[LLMRequest] = []

    def calls(self, model: str) -> int:
        return sum(1 for r in self.requests if r.model == model)

    async def complete(self, request: LLMRequest) -> LLMResponse:
        self.requests.append(request)
        entries = self.script[request.model]
        entry = entries.pop(0) if len(entries) > 1 else entries[0]
        if entry is HANG:
            await asyncio.sleep(3600)
        if isinstance(entry, Exception):
            raise entry
        return LLMResponse(content=entry, model=request.model,
                           usage=LLMUsage(prompt_tokens=10, completion_tokens=20, total_tokens=30))

    async def close(self):
        pass

ARTICLE = """# Choosing a Standing Desk

Standing desks help you move more during the day. This guide covers what matters.

Read our [desk setup guide](https://example.com/desk-setup) before you buy.

## Why Height Matters

The right height keeps your wrists neutral.

Most desks adjust between 70 and 120 centimetres.

## Motor Types

Single motors are cheaper. Dual motors lift more weight.

Compare motors on [the manufacturer site](https://motors.example.org/specs).

## Conclusion

Pick a desk that fits your height and budget.

- **Measure** your elbow height
- **Compare** motor ratings
- **Check** the warranty
"""

def make_phase(phase_id: str, outputs: List[str], required: List[str] = None, **kwargs) -> Phase:
    required = required or []
    template = " ".join(f"{{{{{name}}}}}" for name in required) or "Write something."
    params = dict(
        id=phase_id,
        model=f"m-{phase_id}",
        prompt_template=template,
        required_inputs=required,
        outputs=outputs,
        timeout=5.0,
    )
    params.update(kwargs)
    return Phase(**params)

@pytest.fixture
def article() -> str:
    return ARTICLE

@pytest.fixture
def intro_body_model() -> WorkflowModel:
    """Two-phase model: introduction from the topic, body from the introduction."""
    return WorkflowModel(
        id="intro-body",
        name="Intro and Body",
        quality_levels={QualityLevel.MEDIUM},
        phases=[
            make_phase("intro", ["introduction"], ["topic"]),
            make_phase("body", ["body"], ["introduction"]),
        ],
        rules=Rules(structure=StructureRules(min_h2_sections=0, max_h2_sections=10)),
    )

@pytest.fixture
def chart_required_rules() -> Rules:
    return Rules(content=ContentRules(include_comparison_chart=True))

@pytest.fixture
def runner() -> PostProcessingRunner:
    return PostProcessingRunner.with_builtin_handlers()

def build_engine(llm: FakeLLMClient, *models: WorkflowModel, runner: PostProcessingRunner = None,
                 run_timeout: float = None) -> WorkflowEngine:
    runner = runner or PostProcessingRunner.with_builtin_handlers()
    registry = WorkflowModelRegistry(handler_types=runner.handler_types)
    for model in models:
        registry.register(model)
    if models:
        registry.set_default(models[0].id)
    return WorkflowEngine(
        registry=registry,
        executor=PhaseExecutor(llm, base_delay=0.0, max_delay=0.0),
        runner=runner,
        run_timeout=run_timeout,
    )
