"""Discrepancy evaluation between counted and expected figures."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from . import log
from .constants import DEFAULT_DISCREPANCY_THRESHOLD, ZERO, Severity
from .models import Discrepancy, MalformedBalanceError

_SEVERITY_RANK = {Severity.NONE: 0, Severity.MINOR: 1, Severity.MAJOR: 2}


def evaluate(
    expected: Decimal,
    actual: Decimal,
    threshold: Optional[Decimal] = None,
) -> Discrepancy:
    """Compare a counted figure against the figure the ledger expects.

    A counted value of exactly zero cannot be told apart from "not counted yet"
    in the stored records, so it is reported with :attr:`Severity.NONE` instead
    of a full shortage.

    Args:
        expected (Decimal): Figure derived from the ledger.
        actual (Decimal): Figure counted by staff.
        threshold (Decimal | None): Largest absolute difference still treated
            as minor. Defaults to ``DEFAULT_DISCREPANCY_THRESHOLD``.

    Returns:
        Discrepancy: ``actual - expected`` and its severity.
    """
    limit = DEFAULT_DISCREPANCY_THRESHOLD if threshold is None else threshold
    delta = actual - expected
    if actual == ZERO:
        return Discrepancy(delta=delta, severity=Severity.NONE)
    severity = Severity.MAJOR if abs(delta) > limit else Severity.MINOR
    if severity is Severity.MAJOR:
        log.info("Major discrepancy %s (expected %s, counted %s)", delta, expected, actual)
    return Discrepancy(delta=delta, severity=severity)


def combine_severity(*severities: Severity) -> Severity:
    """Return the worst of ``severities`` (``NONE`` when none are given)."""
    return max(severities, key=_SEVERITY_RANK.__getitem__, default=Severity.NONE)


def parse_counted_balance(raw: Union[str, int, Decimal, None]) -> Decimal:
    """Convert user input into a counted balance.

    Blank input means the figure was not counted and yields zero.

    Raises:
        MalformedBalanceError: If ``raw`` is not a finite number.
    """
    if raw is None:
        return ZERO
    if isinstance(raw, float):
        raise MalformedBalanceError(f"Counted balance must not be a float: {raw!r}")
    text = str(raw).strip().replace(",", "")
    if not text:
        return ZERO
    try:
        value = Decimal(text)
    except InvalidOperation as exc:
        log.warning("Rejected counted balance %r", raw)
        raise MalformedBalanceError(f"Counted balance is not a number: {raw!r}") from exc
    if not value.is_finite():
        raise MalformedBalanceError(f"Counted balance is not a finite number: {raw!r}")
    return value
