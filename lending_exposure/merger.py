"""Multi-source position merging.

Combines address-keyed position lists (direct holders, custodial stakers, direct
secondary stakers) into one deduplicated ledger:

- addresses are identified case-insensitively; the first-seen casing is displayed
- non-positive share amounts are dropped at ingestion
- infrastructure addresses are dropped from sources that apply exclusions
- totals are exact Decimal sums; rounding happens only when serializing
"""

from collections.abc import Iterable, Mapping, Sequence
from decimal import Decimal, localcontext
from functools import reduce
from typing import Any

from lending_exposure.constants import CUSTODIAL_STAKE, DIRECT_HOLDING, DIRECT_SECONDARY_STAKE
from lending_exposure.errors import MalformedInputError
from lending_exposure.formatters import WIDE_CONTEXT, as_decimal, percent_of
from lending_exposure.models import (
    LedgerSummary,
    LenderLedger,
    MergedRecord,
    Position,
    PositionSource,
    SourceTotals,
)


def default_sources(
    direct_holders: Sequence[Mapping[str, Any]],
    custodial_stakers: Sequence[Mapping[str, Any]],
    secondary_stakers: Sequence[Mapping[str, Any]],
) -> list[PositionSource]:
    """The three lender categories, in ingestion order. Exclusions apply to direct holders only."""
    return [
        PositionSource(DIRECT_HOLDING, direct_holders, apply_exclusions=True),
        PositionSource(CUSTODIAL_STAKE, custodial_stakers),
        PositionSource(DIRECT_SECONDARY_STAKE, secondary_stakers),
    ]


def parse_shares(record: Mapping[str, Any], *, source: str) -> Decimal:
    """Parse the `shares` field of a source record; raises MalformedInputError."""
    raw = record.get("shares")
    try:
        return as_decimal(raw)
    except ValueError as ex:
        raise MalformedInputError(address=record.get("address"), source=source, field="shares", raw=raw) from ex


def _fold_source(
    acc: dict[str, MergedRecord],
    source: PositionSource,
    *,
    price_per_share: Decimal,
    excluded: frozenset[str],
) -> dict[str, MergedRecord]:
    out = dict(acc)
    for record in source.records:
        shares = parse_shares(record, source=source.category)
        if shares <= 0:
            continue
        address = str(record["address"])
        key = address.lower()
        if source.apply_exclusions and key in excluded:
            continue

        current = out.get(key)
        if current is None:
            current = MergedRecord(
                address=address,
                positions={},
                total_shares=Decimal(0),
                total_value=Decimal(0),
                sources=(),
            )
        out[key] = current.with_position(source.category, Position(shares=shares, value=shares * price_per_share))
    return out


def summarize(
    lenders: Sequence[MergedRecord], categories: Iterable[str], *, total_supply_shares: Decimal
) -> LedgerSummary:
    """Aggregate statistics over merged records."""
    with localcontext(WIDE_CONTEXT):
        total_shares = sum((r.total_shares for r in lenders), Decimal(0))
        total_value = sum((r.total_value for r in lenders), Decimal(0))
        by_source: dict[str, SourceTotals] = {}
        for category in categories:
            present = [r.positions[category] for r in lenders if category in r.positions]
            by_source[category] = SourceTotals(
                count=len(present),
                total_value=sum((p.value for p in present), Decimal(0)),
            )

    return LedgerSummary(
        unique_lenders=len(lenders),
        multi_source_lenders=sum(1 for r in lenders if len(r.sources) > 1),
        total_tracked_shares=total_shares,
        total_tracked_value=total_value,
        coverage_pct=percent_of(total_shares, total_supply_shares),
        by_source=by_source,
    )


def merge_positions(
    sources: Sequence[PositionSource],
    *,
    price_per_share: Decimal,
    total_supply_shares: Decimal,
    excluded_addresses: Iterable[str] = (),
) -> LenderLedger:
    """
    Merge position sources into a ranked ledger.

    Args:
        sources: Position sources in ingestion order (see `default_sources`)
        price_per_share: Conversion factor from shares to the reference asset
        total_supply_shares: Vault total supply, the denominator of pct_of_vault and coverage
        excluded_addresses: Addresses (any casing) dropped from sources with apply_exclusions=True

    Returns:
        LenderLedger sorted by total value descending (stable), ranked from 1

    Raises:
        MalformedInputError: a record's shares field is not a finite number
    """
    excluded = frozenset(a.lower() for a in excluded_addresses)

    with localcontext(WIDE_CONTEXT):
        merged = reduce(
            lambda acc, src: _fold_source(acc, src, price_per_share=price_per_share, excluded=excluded),
            sources,
            {},
        )

    with_pct = [
        MergedRecord(
            address=r.address,
            positions=r.positions,
            total_shares=r.total_shares,
            total_value=r.total_value,
            sources=r.sources,
            pct_of_vault=percent_of(r.total_shares, total_supply_shares),
        )
        for r in merged.values()
    ]

    # sorted() is stable with reverse=True: equal values keep insertion order.
    ordered = sorted(with_pct, key=lambda r: r.total_value, reverse=True)
    ranked = tuple(
        MergedRecord(
            address=r.address,
            positions=r.positions,
            total_shares=r.total_shares,
            total_value=r.total_value,
            sources=r.sources,
            pct_of_vault=r.pct_of_vault,
            rank=i,
        )
        for i, r in enumerate(ordered, start=1)
    )

    categories = list(dict.fromkeys(src.category for src in sources))
    summary = summarize(ranked, categories, total_supply_shares=total_supply_shares)
    return LenderLedger(lenders=ranked, summary=summary)
