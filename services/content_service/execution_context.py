# execution_context.py - Per-run state shared between phases
# This file contains the execution context accumulator and the run cancellation token.

import asyncio
import time
from typing import Any, Dict, Iterator, List, Mapping, Optional

class ExecutionContext:
    """Key/value store of one workflow run.

    Seeded once from the run parameters; each completed phase merges its
    outputs exactly once. Entries are never removed or overwritten.
    """

    def __init__(self, seed: Mapping[str, Any]):
        self._values: Dict[str, Any] = dict(seed)
        self.seed_keys = frozenset(self._values)
        self._writers: Dict[str, str] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._values

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    def has_value(self, key: str) -> bool:
        """True when the key exists and is not None."""
        return self._values.get(key) is not None

    def missing(self, keys: List[str]) -> List[str]:
        return [k for k in keys if not self.has_value(k)]

    def merge(self, phase_id: str, outputs: Mapping[str, Any]):
        """Publish a phase's outputs. Any key already present is rejected."""
        clashes = [k for k in outputs if k in self._values]
        if clashes:
            owners = [self._writers.get(k, "seed") for k in clashes]
            raise KeyError(
                f"Phase '{phase_id}' attempted to overwrite {clashes} (written by {owners})"
            )
        self._values.update(outputs)
        for key in outputs:
            self._writers[key] = phase_id

    def written_by(self, key: str) -> Optional[str]:
        return self._writers.get(key)

    def snapshot(self) -> Dict[str, Any]:
        return dict(self._values)

class CancellationToken:
    """Run-level cancellation signal with an optional absolute deadline."""

    def __init__(self, timeout: Optional[float] = None):
        self._event = asyncio.Event()
        self._deadline = time.monotonic() + timeout if timeout else None
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "cancelled"):
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self.cancel("run deadline exceeded")
            return True
        return False

    def remaining(self) -> Optional[float]:
        """Seconds left before the run deadline, or None when unbounded."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def bound(self, timeout: float) -> float:
        """Clamp a per-call timeout to the run deadline."""
        remaining = self.remaining()
        return timeout if remaining is None else min(timeout, remaining)

    async def wait(self):
        await self._event.wait()
