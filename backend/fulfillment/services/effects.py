"""Declared failure policy for multi-step fulfillment writes.

Every write that follows a primary mutation is described as a SideEffect
carrying its policy:

- ``EffectPolicy.COMPENSATE``: a failure undoes the steps already completed
  (newest first, through their ``compensation`` callables) and fails the
  whole operation.
- ``EffectPolicy.BEST_EFFORT``: a failure is logged with the operation
  context and the run continues; the caller never sees it.

A best-effort step can still name exception types in ``escalate_on``; those
are handled as if the step were COMPENSATE. Only fulfillment and repository
errors are handled here, anything else propagates untouched.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Sequence

from fulfillment.core.exceptions import (
    DependencyFailure,
    FulfillmentError,
    RepositoryError,
)
from fulfillment.core.logging import get_logger

logger = get_logger(__name__)

HANDLED_ERRORS = (FulfillmentError, RepositoryError)


async def _already_applied() -> None:
    return None


class EffectPolicy(str, Enum):
    """Failure handling declared for a side effect."""

    COMPENSATE = "compensate"
    BEST_EFFORT = "best_effort"


@dataclass
class SideEffect:
    """One step of a multi-step write."""

    name: str
    action: Callable[[], Awaitable[Any]]
    policy: EffectPolicy = EffectPolicy.BEST_EFFORT
    compensation: Optional[Callable[[], Awaitable[Any]]] = None
    escalate_on: tuple[type[Exception], ...] = ()

    @classmethod
    def applied(
        cls,
        name: str,
        compensation: Callable[[], Awaitable[Any]],
    ) -> "SideEffect":
        """Describe a write the caller already made, for its compensation."""
        return cls(
            name=name,
            action=_already_applied,
            policy=EffectPolicy.COMPENSATE,
            compensation=compensation,
        )


@dataclass
class EffectOutcome:
    """Result of running one side effect."""

    name: str
    succeeded: bool
    result: Any = None
    error: Optional[str] = None


@dataclass
class EffectReport:
    """Outcomes of a completed run, in execution order."""

    outcomes: list[EffectOutcome] = field(default_factory=list)

    @property
    def failures(self) -> list[EffectOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.succeeded]

    def result_of(self, name: str) -> Any:
        for outcome in self.outcomes:
            if outcome.name == name:
                return outcome.result
        return None


async def run_effects(
    effects: Sequence[SideEffect],
    operation: str,
    applied: Sequence[SideEffect] = (),
    **context: Any,
) -> EffectReport:
    """Run side effects in order under their declared policies.

    Args:
        effects: Steps to run
        operation: Operation name used in log events
        applied: Writes the caller already made; their compensations run
            too when a compensating step fails
        **context: Identifiers logged with every failure

    Returns:
        Report of every step that ran

    Raises:
        FulfillmentError: A compensating step failed with a fulfillment error,
            re-raised after compensation
        DependencyFailure: A compensating step failed with a store error
    """
    report = EffectReport()
    completed: list[SideEffect] = list(applied)

    for effect in effects:
        try:
            result = await effect.action()
        except HANDLED_ERRORS as e:
            must_compensate = effect.policy == EffectPolicy.COMPENSATE or (
                bool(effect.escalate_on) and isinstance(e, effect.escalate_on)
            )
            if not must_compensate:
                logger.warning(
                    "Best-effort side effect failed",
                    operation=operation,
                    effect=effect.name,
                    error=str(e),
                    error_type=type(e).__name__,
                    **context,
                )
                report.outcomes.append(
                    EffectOutcome(name=effect.name, succeeded=False, error=str(e))
                )
                continue

            logger.error(
                "Side effect failed, compensating",
                operation=operation,
                effect=effect.name,
                error=str(e),
                error_type=type(e).__name__,
                compensating=[step.name for step in reversed(completed)],
                **context,
            )
            await _compensate(completed, operation, **context)

            if isinstance(e, FulfillmentError):
                raise
            raise DependencyFailure(
                f"{operation} failed at step '{effect.name}'",
                operation=operation,
                effect=effect.name,
                **context,
            ) from e

        completed.append(effect)
        report.outcomes.append(
            EffectOutcome(name=effect.name, succeeded=True, result=result)
        )

    return report


async def _compensate(
    completed: Sequence[SideEffect],
    operation: str,
    **context: Any,
) -> None:
    """Undo completed steps newest first.

    A failing compensation is logged for manual reconciliation and does not
    stop the remaining ones.
    """
    for effect in reversed(completed):
        if effect.compensation is None:
            continue
        try:
            await effect.compensation()
        except HANDLED_ERRORS as e:
            logger.error(
                "Compensation failed, manual reconciliation required",
                operation=operation,
                effect=effect.name,
                error=str(e),
                error_type=type(e).__name__,
                **context,
            )
