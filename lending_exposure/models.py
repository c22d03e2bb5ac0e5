"""Data models for lender exposure analysis."""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any


@dataclass(frozen=True)
class Position:
    """Shares held by one address within a single source category."""

    shares: Decimal
    # `value` is denominated in the vault's reference asset (shares * price_per_share).
    value: Decimal


@dataclass(frozen=True)
class PositionSource:
    """One address-keyed input dataset, tagged with its source category."""

    category: str
    records: Sequence[Mapping[str, Any]]
    # Infrastructure addresses are excluded only from sources that hold shares on their behalf.
    apply_exclusions: bool = False


@dataclass(frozen=True)
class MergedRecord:
    """All positions of one address (case-insensitive identity)."""

    address: str
    positions: Mapping[str, Position]
    total_shares: Decimal
    total_value: Decimal
    sources: tuple[str, ...]
    pct_of_vault: Decimal = Decimal(0)
    rank: int = 0

    @property
    def key(self) -> str:
        return self.address.lower()

    def with_position(self, category: str, position: Position) -> "MergedRecord":
        """Return a copy with `position` recorded under `category`.

        A repeated category (the same address listed twice in one source) adds to the
        existing position, so totals always equal the sum of positions.
        """
        positions = dict(self.positions)
        existing = positions.get(category)
        positions[category] = (
            position
            if existing is None
            else Position(shares=existing.shares + position.shares, value=existing.value + position.value)
        )
        sources = self.sources if category in self.sources else (*self.sources, category)
        return MergedRecord(
            address=self.address,
            positions=positions,
            total_shares=self.total_shares + position.shares,
            total_value=self.total_value + position.value,
            sources=sources,
            pct_of_vault=self.pct_of_vault,
            rank=self.rank,
        )


@dataclass(frozen=True)
class SourceTotals:
    """Participation in one source category."""

    count: int
    total_value: Decimal


@dataclass(frozen=True)
class LedgerSummary:
    """Aggregated statistics over the merged ledger."""

    unique_lenders: int
    multi_source_lenders: int
    total_tracked_shares: Decimal
    total_tracked_value: Decimal
    coverage_pct: Decimal
    by_source: Mapping[str, SourceTotals]


@dataclass(frozen=True)
class LenderLedger:
    """Ranked, deduplicated output of the position merger."""

    lenders: tuple[MergedRecord, ...]
    summary: LedgerSummary


@dataclass(frozen=True)
class VaultState:
    """Reference snapshot of the lending vault."""

    price_per_share: Decimal
    total_supply_shares: Decimal
    total_assets_value: Decimal | None = None
    excluded_addresses: frozenset[str] = frozenset()
    # Raw strings as supplied, echoed into the output document.
    raw: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class BorrowEvent:
    """A single borrow-side controller call."""

    tx_hash: str
    user: str
    timestamp: str
    selector: str
    log_count: int
    transfer_count: int
    collateral: Decimal
    borrowed: Decimal


@dataclass(frozen=True)
class ClassifiedEvent:
    """Borrow event with its selector classification."""

    event: BorrowEvent
    label: str
    category: str  # "standard" or "leverage"
    is_borrow: bool
    warning: str | None = None

    @property
    def is_leverage(self) -> bool:
        return self.category == "leverage"


@dataclass(frozen=True)
class BorrowerSummary:
    """Per-borrower totals across classified events."""

    address: str
    events: tuple[ClassifiedEvent, ...]
    total_collateral: Decimal
    total_borrowed: Decimal
    leverage_collateral: Decimal
    leverage_borrowed: Decimal
    standard_collateral: Decimal
    standard_borrowed: Decimal
    leverage_count: int
    standard_count: int
    first_borrow: str | None
    last_borrow: str | None
