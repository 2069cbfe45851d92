"""Resolution of recalibration anchors.

An anchor is a human-counted wallet balance. The projector starts from the
most recent active anchor at or before the date it is asked about. Having no
anchor is a supported state: the ledger then starts from zero at an unbounded
epoch, which understates the balance whenever older records are missing.
"""

from __future__ import annotations

from collections import Counter
from datetime import date
from typing import TYPE_CHECKING, Iterable, Optional

from . import log
from .models import (
    AmbiguousAnchorError,
    InvalidAnchorError,
    RecalibrationAnchor,
    billing_month_of,
    parse_billing_month,
)

if TYPE_CHECKING:
    from .source import TransactionSource


def validate_anchor(anchor: RecalibrationAnchor) -> None:
    """Ensure ``anchor_date`` falls inside the anchor's billing month.

    Raises:
        InvalidAnchorError: If the billing month is malformed or does not
            contain the anchor date.
    """
    try:
        parse_billing_month(anchor.billing_month)
    except ValueError as exc:
        raise InvalidAnchorError(str(exc)) from exc
    if billing_month_of(anchor.anchor_date) != anchor.billing_month:
        log.error(
            "Anchor date %s is outside billing month %s for store '%s'",
            anchor.anchor_date,
            anchor.billing_month,
            anchor.store_id,
        )
        raise InvalidAnchorError(
            f"Anchor date {anchor.anchor_date} is outside billing month {anchor.billing_month}"
        )


def ensure_unambiguous(anchors: Iterable[RecalibrationAnchor]) -> None:
    """Refuse stores holding more than one active anchor per billing month.

    Raises:
        AmbiguousAnchorError: Naming the first offending store and month.
    """
    counts = Counter((anchor.store_id, anchor.billing_month) for anchor in anchors if anchor.is_active)
    for (store_id, billing_month), count in sorted(counts.items()):
        if count > 1:
            log.error(
                "Store '%s' has %d active anchors for %s",
                store_id,
                count,
                billing_month,
            )
            raise AmbiguousAnchorError(
                f"Store '{store_id}' has {count} active anchors for billing month {billing_month}"
            )


def resolve_anchor(
    anchors: Iterable[RecalibrationAnchor],
    store_id: str,
    target_date: date,
) -> Optional[RecalibrationAnchor]:
    """Return the active anchor with the greatest date not after ``target_date``.

    Args:
        anchors (Iterable[RecalibrationAnchor]): Candidate anchors; entries for
            other stores and inactive entries are ignored.
        store_id (str): Store whose ledger is being projected.
        target_date (date): Date of the requested balance.

    Returns:
        RecalibrationAnchor | None: The governing anchor, or ``None`` when the
            store has no anchor on or before ``target_date``.

    Raises:
        AmbiguousAnchorError: If the store has two active anchors in one
            billing month. The check covers every month of the store, not only
            the month that would be selected, so a corrupted history is never
            silently projected.
    """
    candidates = [anchor for anchor in anchors if anchor.store_id == store_id and anchor.is_active]
    ensure_unambiguous(candidates)

    eligible = [anchor for anchor in candidates if anchor.anchor_date <= target_date]
    if not eligible:
        log.warning(
            "No recalibration anchor for store '%s' on or before %s; using a zero baseline",
            store_id,
            target_date,
        )
        return None
    return max(eligible, key=lambda anchor: anchor.anchor_date)


class AnchorResolver:
    """Source-bound wrapper around :func:`resolve_anchor`."""

    def __init__(self, source: "TransactionSource") -> None:
        self._source = source

    def resolve(self, store_id: str, target_date: date) -> Optional[RecalibrationAnchor]:
        return resolve_anchor(self._source.list_anchors(store_id), store_id, target_date)
