# workflow_engine.py - Core execution engine for content workflows
# This file runs a workflow model's phases in order, then validates and post-processes the assembled article.

import asyncio
import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Union

from .content_analysis import content_metadata
from .errors import (
    ContentWorkflowError, InterpolationError, MissingSeedInput, PhaseError, RunCancelled
)
from .event_publisher import ContentEventPublisher
from .execution_context import CancellationToken, ExecutionContext
from .models import (
    Artifact, PhaseResult, PhaseStatus, QualityLevel, RunResult, RunStatus, SeedParameters,
    WorkflowModel
)
from .phase_executor import PhaseExecutor
from .post_processing import PostProcessingRunner
from .rule_validator import validate
from .run_store import RunStore
from .workflow_registry import WorkflowModelRegistry
from .workflow_selector import select

logger = logging.getLogger(__name__)

SeedInput = Union[SeedParameters, Mapping[str, Any]]

FINISHED_STATUSES = frozenset({
    RunStatus.SUCCEEDED, RunStatus.PARTIALLY_FAILED, RunStatus.FAILED, RunStatus.CANCELLED
})

# Context keys tried, in order, when a model does not name its content output
ASSEMBLED_KEY = "assembled_content"
SECTION_KEYS = ("introduction", "body", "conclusion")
FALLBACK_KEY = "content"

def assemble_content(model: WorkflowModel, context: ExecutionContext) -> Optional[str]:
    """Locate the finished article in the context."""
    if model.content_output and context.has_value(model.content_output):
        return str(context[model.content_output]).strip()
    if context.has_value(ASSEMBLED_KEY):
        return str(context[ASSEMBLED_KEY]).strip()
    sections = [str(context[key]).strip() for key in SECTION_KEYS if context.has_value(key)]
    if sections:
        return "\n\n".join(s for s in sections if s)
    if context.has_value(FALLBACK_KEY):
        return str(context[FALLBACK_KEY]).strip()
    return None

def seed_sourced_inputs(model: WorkflowModel) -> List[str]:
    """Required inputs that no phase of the model produces."""
    produced = {key for phase in model.phases for key in phase.outputs}
    needed: List[str] = []
    for phase in model.phases:
        for key in phase.required_inputs:
            if key not in produced and key not in needed:
                needed.append(key)
    return needed

def _keywords(seed: Mapping[str, Any]) -> List[str]:
    found: List[str] = []
    for key in ("primary_keyword", "keywords", "secondary_keywords"):
        value = seed.get(key)
        items = value if isinstance(value, list) else str(value or "").split(",")
        for item in items:
            item = str(item).strip()
            if item and item.lower() not in [k.lower() for k in found]:
                found.append(item)
    return found

class WorkflowEngine:
    """Runs workflow models: selection, phases, validation and post-processing."""

    def __init__(self, registry: WorkflowModelRegistry, executor: PhaseExecutor,
                 runner: PostProcessingRunner, event_publisher: Optional[ContentEventPublisher] = None,
                 run_store: Optional[RunStore] = None, run_timeout: Optional[float] = None,
                 max_concurrent_runs: int = 50, run_retention: float = 0.0):
        self.registry = registry
        self.executor = executor
        self.runner = runner
        self.event_publisher = event_publisher
        self.run_store = run_store
        self.run_timeout = run_timeout
        self.max_concurrent_runs = max_concurrent_runs
        # seconds finished runs stay in memory when there is no run store
        self.run_retention = run_retention
        self.context_factory = ExecutionContext

        self.running_runs: Dict[str, asyncio.Task] = {}
        self.cancel_tokens: Dict[str, CancellationToken] = {}
        self.runs: Dict[str, RunResult] = {}

    # =========================
    # SELECTION AND EXECUTION
    # =========================

    def select(self, quality_level: Union[QualityLevel, str], content_type: Optional[str] = None,
               workflow_id: Optional[str] = None, platform: Optional[str] = None) -> WorkflowModel:
        return select(quality_level, content_type, self.registry.all(), self.registry.default(),
                      workflow_id, platform)

    async def run_workflow(self, quality_level: Union[QualityLevel, str], content_type: Optional[str],
                           seed_parameters: SeedInput, workflow_id: Optional[str] = None,
                           cancel_token: Optional[CancellationToken] = None,
                           platform: Optional[str] = None) -> RunResult:
        """Select the best model for the request and execute it."""
        model = self.select(quality_level, content_type, workflow_id, platform)
        return await self.execute(model, seed_parameters, cancel_token)

    def prepare_seed(self, model: WorkflowModel, seed_parameters: SeedInput) -> Dict[str, Any]:
        """Flatten the seed and check it covers every seed-sourced input of the model."""
        if isinstance(seed_parameters, SeedParameters):
            seed = seed_parameters.to_context()
        else:
            seed = dict(seed_parameters)
        missing = [key for key in seed_sourced_inputs(model) if seed.get(key) is None]
        if missing:
            raise MissingSeedInput(model.id, missing)
        return seed

    async def execute(self, model: WorkflowModel, seed_parameters: SeedInput,
                      cancel_token: Optional[CancellationToken] = None,
                      run_id: Optional[str] = None) -> RunResult:
        """Run one model to completion. Raises MissingSeedInput before the run starts."""
        seed = self.prepare_seed(model, seed_parameters)
        token = cancel_token or CancellationToken(self.run_timeout)
        result = self.runs.get(run_id) if run_id else None
        if result is None:
            result = RunResult(run_id=run_id or str(uuid.uuid4()), workflow_id=model.id)
            self.runs[result.run_id] = result
        result.status = RunStatus.RUNNING
        result.started_at = datetime.utcnow()
        context = self.context_factory(seed)

        logger.info(f"Starting run {result.run_id} with workflow {model.id}")
        await self._save(result)
        if self.event_publisher:
            await self.event_publisher.publish_run_started(result.run_id, model.id, len(model.phases))

        try:
            await self._run_phases(model, context, token, result)
            if result.status == RunStatus.RUNNING:
                await self._finish_content(model, context, result)
        except Exception as e:
            logger.error(f"Run {result.run_id} failed: {str(e)}")
            result.status = RunStatus.FAILED
            result.error = str(e)
            result.content = None

        result.completed_at = datetime.utcnow()
        duration = (result.completed_at - result.started_at).total_seconds()
        logger.info(
            f"Run {result.run_id} finished with status {result.status.value} in {duration:.1f}s "
            f"({result.total_tokens} tokens)"
        )
        await self._save(result)
        if self.event_publisher and result.status != RunStatus.CANCELLED:
            await self.event_publisher.publish_run_finished(
                result.run_id, model.id, result.status.value, duration, result.total_tokens, result.error
            )
        return result

    def _phase_order(self, model: WorkflowModel) -> List[str]:
        if self.registry.get(model.id) is model:
            return self.registry.execution_order(model.id)
        return [phase.id for phase in model.phases]

    async def _run_phases(self, model: WorkflowModel, context: ExecutionContext,
                          token: CancellationToken, result: RunResult):
        phases = {phase.id: phase for phase in model.phases}
        order = self._phase_order(model)

        for index, phase_id in enumerate(order):
            phase = phases[phase_id]
            try:
                if token.cancelled:
                    raise RunCancelled(token.reason or "cancelled")
                phase_result, outputs = await self.executor.run(phase, context, token)
            except RunCancelled as e:
                logger.info(f"Run {result.run_id} cancelled before/during phase {phase_id}: {str(e)}")
                result.status = RunStatus.CANCELLED
                result.error = f"Run cancelled: {str(e)}"
                self._skip_remaining(order[index:], result)
                return
            except Exception as e:
                if not isinstance(e, (PhaseError, InterpolationError)):
                    logger.exception(f"Unexpected error in phase {phase_id} of run {result.run_id}")
                phase_result = getattr(e, "result", None) or PhaseResult(
                    phase_id=phase_id, status=PhaseStatus.FAILED, model=phase.model, error=str(e)
                )
                result.phase_results.append(phase_result)
                result.status = RunStatus.FAILED
                result.error = str(e)
                logger.error(f"Run {result.run_id} failed at phase {phase_id}: {str(e)}")
                if self.event_publisher:
                    await self.event_publisher.publish_phase_failed(
                        result.run_id, model.id, phase_id, phase_result.attempts, str(e)
                    )
                self._skip_remaining(order[index + 1:], result)
                return

            context.merge(phase.id, outputs)
            result.phase_results.append(phase_result)
            await self._save(result)
            if self.event_publisher:
                await self.event_publisher.publish_phase_completed(
                    result.run_id, model.id, phase_id, phase_result.duration_ms,
                    phase_result.attempts, phase_result.tokens_used
                )

    @staticmethod
    def _skip_remaining(phase_ids: List[str], result: RunResult):
        for phase_id in phase_ids:
            result.phase_results.append(PhaseResult(phase_id=phase_id, status=PhaseStatus.SKIPPED))

    async def _finish_content(self, model: WorkflowModel, context: ExecutionContext, result: RunResult):
        content = assemble_content(model, context)
        if not content:
            result.status = RunStatus.FAILED
            result.error = "Workflow produced no content"
            return

        site_url = context.get("site_url") or None
        report = validate(content, model.rules, site_url)
        metadata = content_metadata(content, site_url)
        result.content = content
        result.validation_report = report
        result.metadata = metadata

        if report.passed:
            result.status = RunStatus.SUCCEEDED
        else:
            result.status = RunStatus.PARTIALLY_FAILED
            result.error = "; ".join(f"{v.rule}: {v.detail}" for v in report.mandatory)
        for violation in report.advisory:
            logger.warning(f"Run {result.run_id} advisory violation {violation.rule}: {violation.detail}")

        title = next((h.text for h in metadata.headings if h.level == 1), None)
        artifact = Artifact(
            run_id=result.run_id,
            workflow_id=model.id,
            content=content,
            title=title or str(context.get("topic") or model.name),
            keywords=_keywords(context.snapshot()),
            site_url=site_url,
            context=context.snapshot(),
            metadata=metadata,
            validation_report=report,
        )
        result.post_processing_results = await self.runner.run(model.post_processing, artifact)

    async def _save(self, result: RunResult):
        if self.run_store:
            await self.run_store.save_run(result)

    # =========================
    # BACKGROUND RUNS
    # =========================

    async def start_run(self, model: WorkflowModel, seed_parameters: SeedInput) -> RunResult:
        """Schedule a run in the background and return its pending record."""
        self.prepare_seed(model, seed_parameters)
        if len(self.get_running_runs()) >= self.max_concurrent_runs:
            raise ContentWorkflowError(f"Too many concurrent runs (limit {self.max_concurrent_runs})")

        result = RunResult(workflow_id=model.id)
        token = CancellationToken(self.run_timeout)
        self.runs[result.run_id] = result
        self.cancel_tokens[result.run_id] = token
        await self._save(result)

        task = asyncio.create_task(self.execute(model, seed_parameters, token, result.run_id))
        self.running_runs[result.run_id] = task
        task.add_done_callback(lambda _: self.cancel_tokens.pop(result.run_id, None))
        logger.info(f"Scheduled run {result.run_id} with workflow {model.id}")
        return result

    async def get_run(self, run_id: str) -> Optional[RunResult]:
        if run_id in self.runs:
            return self.runs[run_id]
        if self.run_store:
            return await self.run_store.get_run(run_id)
        return None

    async def cancel_run(self, run_id: str) -> bool:
        """Signal a running run to stop. The run ends as cancelled at its next suspension point."""
        token = self.cancel_tokens.get(run_id)
        if token is None:
            logger.warning(f"Cannot cancel - run {run_id} not running")
            return False
        token.cancel("cancelled by request")
        logger.info(f"Cancellation requested for run {run_id}")
        return True

    def get_running_runs(self) -> List[str]:
        return [run_id for run_id, task in self.running_runs.items() if not task.done()]

    def cleanup_completed_runs(self) -> int:
        """Forget finished runs and return how many records were dropped.

        Persisted records stay in the run store; without one, finished runs
        stay readable for `run_retention` seconds.
        """
        for run_id in [run_id for run_id, task in self.running_runs.items() if task.done()]:
            del self.running_runs[run_id]

        retention = 0.0 if self.run_store else self.run_retention
        now = datetime.utcnow()
        expired = [
            run_id for run_id, run in self.runs.items()
            if run.status in FINISHED_STATUSES and run_id not in self.running_runs
            and run.completed_at and (now - run.completed_at).total_seconds() >= retention
        ]
        for run_id in expired:
            del self.runs[run_id]
        if expired:
            logger.info(f"Cleaned up {len(expired)} completed runs")
        return len(expired)

    async def shutdown(self):
        for token in list(self.cancel_tokens.values()):
            token.cancel("service shutting down")
        tasks = [task for task in self.running_runs.values() if not task.done()]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
