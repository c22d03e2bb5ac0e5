"""Validation logic for the vault snapshot and the merged ledger."""

from decimal import Decimal, localcontext

from lending_exposure.constants import COVERAGE_TOLERANCE_PCT
from lending_exposure.formatters import WIDE_CONTEXT, format_pct
from lending_exposure.models import LenderLedger, VaultState


def validate_vault_state(state: VaultState, *, warn_only: bool = True) -> list[str]:
    """
    Validate the vault reference snapshot.

    Returns list of warnings. If warn_only=False, raises ValueError on the first issue.
    """
    issues: list[str] = []

    checks = {
        "price_per_share": state.price_per_share,
        "total_supply_shares": state.total_supply_shares,
    }
    for name, value in checks.items():
        if value <= 0:
            msg = f"Vault state: non-positive {name}: {value}"
            issues.append(msg)
            if not warn_only:
                raise ValueError(msg)

    if state.total_assets_value is not None and state.total_assets_value < 0:
        msg = f"Vault state: negative total_assets_value: {state.total_assets_value}"
        issues.append(msg)
        if not warn_only:
            raise ValueError(msg)

    return issues


def validate_coverage(coverage_pct: Decimal, *, warn_only: bool = True) -> list[str]:
    """
    Flag coverage above 100% (plus tolerance).

    Known positions cannot exceed the vault total unless the reference snapshot is stale.
    """
    issues: list[str] = []
    limit = Decimal(100) + Decimal(COVERAGE_TOLERANCE_PCT)
    if coverage_pct > limit:
        msg = (
            f"Coverage {format_pct(coverage_pct)}% exceeds 100% "
            "(tracked shares > vault total supply; reference snapshot may be stale)"
        )
        issues.append(msg)
        if not warn_only:
            raise ValueError(msg)
    return issues


def validate_ledger_conservation(ledger: LenderLedger, *, warn_only: bool = True) -> list[str]:
    """
    Re-check ledger invariants: totals equal position sums, sources match positions,
    ranks are 1..N and total values are non-increasing.
    """
    issues: list[str] = []

    def _issue(msg: str) -> None:
        issues.append(msg)
        if not warn_only:
            raise ValueError(msg)

    prev_value: Decimal | None = None
    for i, rec in enumerate(ledger.lenders, start=1):
        with localcontext(WIDE_CONTEXT):
            shares = sum((p.shares for p in rec.positions.values()), Decimal(0))
            value = sum((p.value for p in rec.positions.values()), Decimal(0))
        if shares != rec.total_shares:
            _issue(f"Lender {rec.address}: total_shares {rec.total_shares} != sum of positions {shares}")
        if value != rec.total_value:
            _issue(f"Lender {rec.address}: total_value {rec.total_value} != sum of positions {value}")
        if set(rec.sources) != set(rec.positions.keys()):
            _issue(f"Lender {rec.address}: sources {list(rec.sources)} do not match positions")
        if rec.rank != i:
            _issue(f"Lender {rec.address}: rank {rec.rank} at position {i}")
        if prev_value is not None and rec.total_value > prev_value:
            _issue(f"Lender {rec.address}: total_value {rec.total_value} out of order")
        prev_value = rec.total_value

    return issues
