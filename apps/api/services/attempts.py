"""Typed outcomes for ordered fallback strategies."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Success:
    value: Any


@dataclass(frozen=True)
class RecoverableFailure:
    reason: str
    errored: bool = False


@dataclass(frozen=True)
class FatalFailure:
    reason: str
    status_code: Optional[int] = None


AttemptOutcome = Union[Success, RecoverableFailure, FatalFailure]
Attempt = Tuple[str, Callable[[], Awaitable[AttemptOutcome]]]


async def run_attempts(attempts: Sequence[Attempt]) -> AttemptOutcome:
    """Try each named strategy in order.

    Returns the first ``Success`` or ``FatalFailure``. An exception raised by a
    strategy is logged and counted as a recoverable failure with
    ``errored=True``. When every strategy recovers, the failures are folded
    into one ``RecoverableFailure``.
    """
    failures: List[RecoverableFailure] = []
    for name, attempt in attempts:
        try:
            outcome = await attempt()
        except Exception as exc:
            logger.warning("Attempt %s raised: %s", name, exc)
            failures.append(RecoverableFailure(f"{name}: {exc}", errored=True))
            continue
        if isinstance(outcome, (Success, FatalFailure)):
            return outcome
        failures.append(outcome)

    if not failures:
        return RecoverableFailure("no strategies configured")
    return RecoverableFailure(
        "; ".join(failure.reason for failure in failures),
        errored=any(failure.errored for failure in failures),
    )
