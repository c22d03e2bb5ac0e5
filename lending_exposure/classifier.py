"""Borrow event classification by function selector.

Standard calls emit a handful of logs (collateral in, stablecoin out). The extended
(leverage) variants call back into a DEX router within the same transaction and emit
dozens of logs. The selector table decides; the log count is only cross-checked.
"""

from collections.abc import Iterable, Mapping, Sequence
from decimal import Decimal, localcontext
from typing import Any

from lending_exposure.constants import (
    CATEGORY_LEVERAGE,
    CATEGORY_STANDARD,
    LEVERAGE_LOG_THRESHOLD,
    OBSERVED_SELECTORS,
    UNKNOWN_SELECTOR_LABEL,
)
from lending_exposure.formatters import WIDE_CONTEXT, format_value
from lending_exposure.models import BorrowerSummary, BorrowEvent, ClassifiedEvent


def classify_event(
    event: BorrowEvent,
    *,
    selectors: Mapping[str, tuple[str, bool, bool]] = OBSERVED_SELECTORS,
    log_threshold: int = LEVERAGE_LOG_THRESHOLD,
) -> ClassifiedEvent:
    """
    Classify one event.

    Unknown selectors get the UNKNOWN label and the standard category, with no heuristic applied.
    """
    entry = selectors.get(event.selector.lower())
    if entry is None:
        return ClassifiedEvent(event=event, label=UNKNOWN_SELECTOR_LABEL, category=CATEGORY_STANDARD, is_borrow=False)

    label, is_leverage, is_borrow = entry
    looks_extended = event.log_count > log_threshold
    warning = None
    if is_leverage and not looks_extended:
        warning = f"{event.tx_hash} classified as leverage but only {event.log_count} logs"
    elif not is_leverage and looks_extended:
        warning = f"{event.tx_hash} classified as {label} but has {event.log_count} logs"

    return ClassifiedEvent(
        event=event,
        label=label,
        category=CATEGORY_LEVERAGE if is_leverage else CATEGORY_STANDARD,
        is_borrow=is_borrow,
        warning=warning,
    )


def classify_events(events: Iterable[BorrowEvent], **kwargs: Any) -> list[ClassifiedEvent]:
    return [classify_event(e, **kwargs) for e in events]


def summarize_borrowers(classified: Sequence[ClassifiedEvent]) -> list[BorrowerSummary]:
    """
    Per-borrower totals, sorted by total borrowed descending (stable).

    Borrowers are keyed case-insensitively. Leverage events count toward the leverage split;
    standard events count toward the standard split only when the call borrows
    (add_collateral and unknown calls only add to the overall totals).
    """
    grouped: dict[str, list[ClassifiedEvent]] = {}
    for c in classified:
        grouped.setdefault(c.event.user.lower(), []).append(c)

    summaries: list[BorrowerSummary] = []
    with localcontext(WIDE_CONTEXT):
        for events in grouped.values():
            zero = Decimal(0)
            lev = [c for c in events if c.is_leverage]
            std = [c for c in events if not c.is_leverage and c.is_borrow]
            timestamps = [c.event.timestamp for c in events if c.event.timestamp]
            summaries.append(
                BorrowerSummary(
                    address=events[0].event.user,
                    events=tuple(events),
                    total_collateral=sum((c.event.collateral for c in events), zero),
                    total_borrowed=sum((c.event.borrowed for c in events), zero),
                    leverage_collateral=sum((c.event.collateral for c in lev), zero),
                    leverage_borrowed=sum((c.event.borrowed for c in lev), zero),
                    standard_collateral=sum((c.event.collateral for c in std), zero),
                    standard_borrowed=sum((c.event.borrowed for c in std), zero),
                    leverage_count=len(lev),
                    standard_count=len(std),
                    first_borrow=min(timestamps) if timestamps else None,
                    last_borrow=max(timestamps) if timestamps else None,
                )
            )

    return sorted(summaries, key=lambda s: s.total_borrowed, reverse=True)


def combine_borrowers(summaries: Sequence[BorrowerSummary], addresses: Iterable[str]) -> dict[str, Any] | None:
    """
    Combined view of a watched group of wallets (e.g. several wallets of one entity).

    Returns None unless every watched address has a summary.
    """
    by_key = {s.address.lower(): s for s in summaries}
    group = [by_key.get(a.lower()) for a in addresses]
    if not group or any(s is None for s in group):
        return None

    with localcontext(WIDE_CONTEXT):
        total = sum((s.total_borrowed for s in group), Decimal(0))
        leverage = sum((s.leverage_borrowed for s in group), Decimal(0))
        standard = total - leverage

    return {
        "wallets": [s.address for s in group],
        "total_borrowed": format_value(total),
        "leverage_borrowed": format_value(leverage),
        "standard_borrowed": format_value(standard),
        "leverage_count": sum(s.leverage_count for s in group),
        "standard_count": sum(s.standard_count for s in group),
        "first_borrows": {s.address: s.first_borrow for s in group},
        "last_borrows": {s.address: s.last_borrow for s in group},
    }


def leverage_share_pct(summary: BorrowerSummary) -> Decimal | None:
    """Leverage borrowing as % of total borrowed (None when nothing was borrowed)."""
    if summary.total_borrowed == 0:
        return None
    return WIDE_CONTEXT.multiply(WIDE_CONTEXT.divide(summary.leverage_borrowed, summary.total_borrowed), Decimal(100))


def build_leverage_document(
    classified: Sequence[ClassifiedEvent],
    summaries: Sequence[BorrowerSummary],
    *,
    analysis_date: str,
    combined: dict[str, Any] | None = None,
    selectors: Mapping[str, tuple[str, bool, bool]] = OBSERVED_SELECTORS,
) -> dict[str, Any]:
    """Build the leverage analysis JSON document."""
    leveraged = sum(1 for s in summaries if s.leverage_count > 0)
    return {
        "analysis_date": analysis_date,
        "selector_map": {sel: label for sel, (label, _, _) in selectors.items()},
        "borrower_summaries": [
            {
                "address": s.address,
                "total_collateral": format_value(s.total_collateral),
                "total_borrowed": format_value(s.total_borrowed),
                "leverage_collateral": format_value(s.leverage_collateral),
                "leverage_borrowed": format_value(s.leverage_borrowed),
                "standard_collateral": format_value(s.standard_collateral),
                "standard_borrowed": format_value(s.standard_borrowed),
                "leverage_count": s.leverage_count,
                "standard_count": s.standard_count,
                "first_borrow": s.first_borrow,
                "last_borrow": s.last_borrow,
                "events": [
                    {
                        "timestamp": c.event.timestamp,
                        "tx_hash": c.event.tx_hash,
                        "selector": c.event.selector,
                        "classification": c.label,
                        "category": c.category,
                        "collateral": format_value(c.event.collateral),
                        "borrowed": format_value(c.event.borrowed),
                        "log_count": c.event.log_count,
                        "transfer_count": c.event.transfer_count,
                    }
                    for c in s.events
                ],
            }
            for s in summaries
        ],
        "combined": combined,
        "leverage_usage": {
            "leveraged_borrowers": leveraged,
            "standard_only_borrowers": len(summaries) - leveraged,
        },
        "warnings": [c.warning for c in classified if c.warning],
    }
