"""
Compensating step executor.

The team store has no multi-statement transactions, so operations that
touch several rows run as an ordered list of steps. When a step fails, the
compensations of the steps that already completed run in reverse order and
the original error is re-raised. A compensation that itself fails is logged
and attached to the original error; it never replaces it.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from app.services.errors import TeamServiceError

logger = logging.getLogger(__name__)

Action = Callable[[], Awaitable[Any]]
Compensation = Callable[[Any], Awaitable[Any]]


@dataclass
class Step:
    name: str
    action: Action
    compensate: Compensation | None = None


class CompensatingSequence:
    """Ordered steps with best-effort undo.

    Usage::

        seq = CompensatingSequence("transfer ownership")
        seq.add("demote owner", demote, compensate=lambda _: restore_owner())
        seq.add("promote target", lambda: promote(seq.results["demote owner"]))
        await seq.run()

    Each compensation receives the result of its own step's action.
    """

    def __init__(self, operation: str):
        self.operation = operation
        self.steps: list[Step] = []
        self.results: dict[str, Any] = {}

    def add(
        self,
        name: str,
        action: Action,
        compensate: Compensation | None = None,
    ) -> "CompensatingSequence":
        if any(step.name == name for step in self.steps):
            raise ValueError(f"Duplicate step name: {name}")
        self.steps.append(Step(name=name, action=action, compensate=compensate))
        return self

    async def run(self) -> dict[str, Any]:
        """Run all steps in order and return their results keyed by step name."""
        completed: list[Step] = []
        for step in self.steps:
            try:
                self.results[step.name] = await step.action()
            except Exception as exc:
                failures = await self._compensate(completed, step, exc)
                if isinstance(exc, TeamServiceError):
                    exc.compensation_failures.extend(failures)
                raise
            completed.append(step)
        return self.results

    async def _compensate(self, completed: list[Step], failed: Step, cause: Exception) -> list[Exception]:
        pending = [step for step in reversed(completed) if step.compensate is not None]
        if not pending:
            return []

        logger.warning(
            f"{self.operation}: step '{failed.name}' failed ({cause}); "
            f"compensating {len(pending)} completed step(s)"
        )
        failures: list[Exception] = []
        for step in pending:
            try:
                await step.compensate(self.results.get(step.name))
            except Exception as comp_exc:
                # Keep going: the remaining undo actions are independent
                logger.error(
                    f"{self.operation}: compensation for step '{step.name}' failed: {comp_exc}",
                    exc_info=comp_exc,
                )
                failures.append(comp_exc)
        return failures
