"""Console output formatting."""

import sys
from decimal import Decimal

from lending_exposure.classifier import leverage_share_pct
from lending_exposure.constants import DEFAULT_TOP_N
from lending_exposure.formatters import format_pct, format_value, short_address, source_tag
from lending_exposure.models import BorrowerSummary, LenderLedger, VaultState


def print_warnings(title: str, issues: list[str]) -> None:
    """Print a block of warnings to stderr (nothing if there are none)."""
    if not issues:
        return
    print(f"⚠️  {title}:", file=sys.stderr)
    for issue in issues:
        print(f"   {issue}", file=sys.stderr)


def print_ledger_summary(ledger: LenderLedger, vault_state: VaultState, *, top: int = DEFAULT_TOP_N) -> None:
    """Print merged ledger totals, per-source breakdown and the top lenders."""
    summary = ledger.summary
    assets = vault_state.raw.get("total_assets_value")

    print("=" * 70)
    print("🏦 ALL LENDERS MERGED")
    print("=" * 70)
    print(f"   Unique addresses:      {summary.unique_lenders}")
    print(f"   Multi-source holders:  {summary.multi_source_lenders}")
    print(f"   Total tracked value:   {format_value(summary.total_tracked_value)}")
    if assets is not None:
        print(f"   Vault total value:     {assets}")
    print(f"   Coverage:              {format_pct(summary.coverage_pct)}%")

    print("\n📊 Per-source breakdown:")
    width = max((len(c) for c in summary.by_source), default=0) + 1
    for category, totals in summary.by_source.items():
        print(f"   {category + ':':<{width}} {totals.count} addresses  •  {format_value(totals.total_value)}")

    if not ledger.lenders:
        print("\nℹ️ No lenders with a non-zero position.")
        return

    shown = ledger.lenders[:top]
    print(f"\n🏆 Top {len(shown)} lenders by total value:")
    for rec in shown:
        print(
            f"   #{rec.rank:<3} {rec.address}  {format_value(rec.total_value)}  "
            f"({format_pct(rec.pct_of_vault)}%) {source_tag(rec.sources)}"
        )
    print("")


def print_borrower_analysis(summaries: list[BorrowerSummary], *, combined: dict | None = None) -> None:
    """Print per-borrower leverage breakdown and timelines."""
    print("=" * 70)
    print("🔎 BORROWER ANALYSIS")
    print("=" * 70)

    for s in summaries:
        print(f"\n--- {s.address} ---")
        print(f"   Period: {s.first_borrow or 'n/a'} → {s.last_borrow or 'n/a'}")
        print(f"   Total borrowed:   {format_value(s.total_borrowed)}")
        print(f"   Total collateral: {format_value(s.total_collateral)}")
        print(
            f"   Leverage events: {s.leverage_count} "
            f"({format_value(s.leverage_borrowed)} borrowed / {format_value(s.leverage_collateral)} collateral)"
        )
        print(
            f"   Standard events: {s.standard_count} "
            f"({format_value(s.standard_borrowed)} borrowed / {format_value(s.standard_collateral)} collateral)"
        )
        share = leverage_share_pct(s)
        print(f"   Leverage % of total borrowed: {f'{share:.1f}%' if share is not None else 'n/a'}")
        print("   Timeline:")
        for c in s.events:
            if c.is_leverage:
                tag = "🔴 LEVERAGE"
            elif c.is_borrow:
                tag = "🟢 STANDARD"
            else:
                tag = f"⬜ {c.label}"
            print(
                f"     {c.event.timestamp or '?'} | {tag} | +{c.event.collateral:.0f} collateral | "
                f"+{c.event.borrowed:.2f} borrowed | {c.event.log_count} logs"
            )

    if combined is not None:
        print("\n🧩 Combined (watched wallets):")
        print(f"   Wallets: {', '.join(short_address(w) for w in combined['wallets'])}")
        print(f"   Total borrowed:  {combined['total_borrowed']}")
        print(f"   Via leverage:    {combined['leverage_borrowed']} ({combined['leverage_count']} transactions)")
        print(f"   Via standard:    {combined['standard_borrowed']} ({combined['standard_count']} transactions)")
        total = Decimal(combined["total_borrowed"])
        if total > 0:
            pct = Decimal(combined["leverage_borrowed"]) / total * 100
            print(f"   Leverage % of gross borrowing: {pct:.1f}%")

    leveraged = [s for s in summaries if s.leverage_count > 0]
    print("\n📈 Leverage usage across all borrowers:")
    for s in summaries:
        if s.leverage_count > 0:
            print(f"   {short_address(s.address)} used leverage {s.leverage_count} times ({format_value(s.leverage_borrowed)})")
        else:
            print(f"   {short_address(s.address)} standard only ({format_value(s.total_borrowed)})")
    print(f"\n   Borrowers who used leverage: {len(leveraged)}")
    print(f"   Standard-only borrowers:     {len(summaries) - len(leveraged)}")
    print("")
