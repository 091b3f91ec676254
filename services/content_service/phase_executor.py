# phase_executor.py - Single phase execution with retry and timeout
# This file renders a phase's prompts, calls the LLM client under deadline and derives the phase outputs.

import asyncio
import json
import logging
import time
from typing import Any, Dict, Optional, Tuple

from .errors import (
    LLMRequestError, LLMResponseError, LLMTransientError, PhaseError, RunCancelled
)
from .execution_context import CancellationToken, ExecutionContext
from .llm_client import LLMClient, LLMRequest, LLMResponse
from .models import Phase, PhaseResult, PhaseStatus
from .template import render

logger = logging.getLogger(__name__)

class OutputSplitError(ValueError):
    """A multi-output response could not be divided into the declared outputs."""

def parse_json_block(raw_text: str) -> Any:
    """Parse JSON from an LLM response, tolerating markdown code fences."""
    content = raw_text.strip()
    if content.startswith("```"):
        content = content.split("\n", 1)[1] if "\n" in content else content[3:]
    if content.endswith("```"):
        content = content.rsplit("```", 1)[0]
    content = content.strip()
    try:
        return json.loads(content)
    except json.JSONDecodeError:
        # Prose around the object: take the outermost braces
        start, end = content.find("{"), content.rfind("}")
        if start == -1 or end <= start:
            raise
        return json.loads(content[start:end + 1])

def split_outputs(phase: Phase, text: str) -> Dict[str, Any]:
    """Map the response text onto the phase's declared outputs."""
    if len(phase.outputs) == 1 and phase.output_split is None:
        return {phase.outputs[0]: text}

    split = phase.output_split
    if split is None:
        raise OutputSplitError(f"Phase '{phase.id}' declares several outputs without a split rule")

    if split.strategy == "json":
        try:
            data = parse_json_block(text)
        except json.JSONDecodeError as e:
            raise OutputSplitError(f"Response is not a JSON object: {str(e)}")
        if not isinstance(data, dict):
            raise OutputSplitError("Response JSON is not an object")
        missing = [name for name in phase.outputs if data.get(name) in (None, "")]
        if missing:
            raise OutputSplitError(f"Response JSON lacks outputs: {missing}")
        return {name: data[name] for name in phase.outputs}

    parts = [part.strip() for part in text.split(split.delimiter)]
    if len(parts) != len(phase.outputs) or not all(parts):
        raise OutputSplitError(
            f"Expected {len(phase.outputs)} non-empty parts separated by "
            f"{split.delimiter!r}, got {len([p for p in parts if p])}"
        )
    return dict(zip(phase.outputs, parts))

class PhaseExecutor:
    """Runs one phase against the LLM client, honouring its retry policy."""

    def __init__(self, llm_client: LLMClient, base_delay: float = 1.0, max_delay: float = 10.0):
        self.llm_client = llm_client
        self.base_delay = base_delay
        self.max_delay = max_delay

    def backoff(self, attempt: int) -> float:
        return min(self.base_delay * 2 ** (attempt - 1), self.max_delay)

    def build_request(self, phase: Phase, context: ExecutionContext) -> LLMRequest:
        messages = []
        if phase.system_prompt:
            messages.append({"role": "system", "content": render(phase.system_prompt, context, phase.id)})
        messages.append({"role": "user", "content": render(phase.prompt_template, context, phase.id)})
        return LLMRequest(
            model=phase.model,
            messages=messages,
            temperature=phase.temperature,
            max_tokens=phase.max_tokens,
            stop=phase.stop or None,
        )

    async def run(self, phase: Phase, context: ExecutionContext,
                  cancel_token: Optional[CancellationToken] = None) -> Tuple[PhaseResult, Dict[str, Any]]:
        """Execute a phase and return its result plus the outputs to merge.

        The context is read, never written.
        """
        started = time.monotonic()
        result = PhaseResult(phase_id=phase.id, status=PhaseStatus.FAILED, model=phase.model)

        missing = context.missing(phase.required_inputs)
        if missing:
            result.error = f"Required inputs not available: {missing}"
            raise PhaseError(phase.id, result.error, result)

        request = self.build_request(phase, context)

        while True:
            if cancel_token and cancel_token.cancelled:
                raise RunCancelled(cancel_token.reason or "cancelled")

            result.attempts += 1
            attempt = result.attempts
            try:
                response = await self._call(phase, request, cancel_token)
                outputs = split_outputs(phase, response.content)
            except LLMRequestError as e:
                result.error = str(e)
                result.duration_ms = int((time.monotonic() - started) * 1000)
                logger.error(f"Phase {phase.id} rejected by LLM backend: {str(e)}")
                raise PhaseError(phase.id, result.error, result)
            except (asyncio.TimeoutError, LLMTransientError, LLMResponseError, OutputSplitError) as e:
                result.error = _describe(e, phase)
                if attempt >= phase.max_attempts:
                    result.duration_ms = int((time.monotonic() - started) * 1000)
                    logger.error(f"Phase {phase.id} failed after {attempt} attempt(s): {result.error}")
                    raise PhaseError(phase.id, result.error, result)
                delay = self.backoff(attempt)
                logger.warning(
                    f"Phase {phase.id} attempt {attempt} failed ({result.error}), retrying in {delay:.1f}s"
                )
                await self._pause(delay, cancel_token)
                continue

            result.status = PhaseStatus.SUCCEEDED
            result.error = None
            result.tokens_used += response.usage.total_tokens
            result.model = response.model
            result.outputs_written = list(outputs)
            result.duration_ms = int((time.monotonic() - started) * 1000)
            logger.info(
                f"Phase {phase.id} succeeded in {result.duration_ms}ms "
                f"after {attempt} attempt(s), {result.tokens_used} tokens"
            )
            return result, outputs

    async def _pause(self, delay: float, cancel_token: Optional[CancellationToken]):
        """Retry backoff that ends early when the run is cancelled."""
        if cancel_token is None:
            await asyncio.sleep(delay)
            return
        try:
            await asyncio.wait_for(cancel_token.wait(), timeout=cancel_token.bound(delay))
        except asyncio.TimeoutError:
            pass

    async def _call(self, phase: Phase, request: LLMRequest,
                    cancel_token: Optional[CancellationToken]) -> LLMResponse:
        """One LLM call bounded by the phase timeout and the run deadline."""
        timeout = cancel_token.bound(phase.timeout) if cancel_token else phase.timeout
        call = asyncio.create_task(self.llm_client.complete(request))
        waiters = {call}
        cancel_wait = None
        if cancel_token:
            cancel_wait = asyncio.create_task(cancel_token.wait())
            waiters.add(cancel_wait)
        try:
            done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in waiters:
                if not task.done():
                    task.cancel()

        if call in done:
            return call.result()
        if cancel_wait is not None and cancel_wait in done:
            raise RunCancelled(cancel_token.reason or "cancelled")
        if cancel_token and cancel_token.cancelled:
            raise RunCancelled(cancel_token.reason or "run deadline exceeded")
        raise asyncio.TimeoutError(f"timed out after {timeout:.1f}s")

def _describe(error: Exception, phase: Phase) -> str:
    if isinstance(error, asyncio.TimeoutError):
        return str(error) or f"timed out after {phase.timeout:.1f}s"
    return str(error)
