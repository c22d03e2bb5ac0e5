"""Output document construction and writing."""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from lending_exposure.constants import LEDGER_DESCRIPTION
from lending_exposure.formatters import format_pct, format_shares, format_value
from lending_exposure.models import LenderLedger, MergedRecord, VaultState


def utc_now_iso() -> str:
    """Current time as an ISO-8601 UTC timestamp (millisecond precision)."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def unix_to_iso(timestamp: int) -> str:
    """Block timestamp (unix seconds) as an ISO-8601 UTC timestamp, same format as utc_now_iso."""
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def lender_entry(rec: MergedRecord) -> dict[str, Any]:
    """Serialize one merged record; only present positions are listed."""
    return {
        "rank": rec.rank,
        "address": rec.address,
        "total_shares": format_shares(rec.total_shares),
        "total_value": format_value(rec.total_value),
        "pct_of_vault": format_pct(rec.pct_of_vault),
        "sources": list(rec.sources),
        "positions": {
            category: {
                "shares": format_shares(rec.positions[category].shares),
                "value": format_value(rec.positions[category].value),
            }
            for category in rec.sources
        },
    }


def vault_entry(state: VaultState) -> dict[str, Any]:
    """Reference vault block: the supplied strings plus any extra metadata, verbatim."""
    out: dict[str, Any] = {
        "total_supply_shares": state.raw.get("total_supply_shares", str(state.total_supply_shares)),
        "total_assets_value": state.raw.get("total_assets_value"),
        "price_per_share": state.raw.get("price_per_share", str(state.price_per_share)),
    }
    for key, value in state.raw.items():
        if key not in out:
            out[key] = value
    return out


def build_ledger_document(
    ledger: LenderLedger,
    vault_state: VaultState,
    *,
    generated_at: str | None = None,
    source_timestamps: dict[str, str] | None = None,
) -> dict[str, Any]:
    """Build the all-lenders JSON document."""
    summary = ledger.summary
    doc: dict[str, Any] = {
        "generated_at": generated_at or utc_now_iso(),
        "description": LEDGER_DESCRIPTION,
    }
    if source_timestamps:
        doc["source_timestamps"] = dict(source_timestamps)
    doc["vault"] = vault_entry(vault_state)
    doc["summary"] = {
        "unique_lenders": summary.unique_lenders,
        "multi_source_lenders": summary.multi_source_lenders,
        "total_tracked_shares": format_shares(summary.total_tracked_shares),
        "total_tracked_value": format_value(summary.total_tracked_value),
        "coverage_pct": format_pct(summary.coverage_pct),
        "by_source": {
            category: {"count": totals.count, "total_value": format_value(totals.total_value)}
            for category, totals in summary.by_source.items()
        },
    }
    doc["lenders"] = [lender_entry(rec) for rec in ledger.lenders]
    return doc


def dumps_document(doc: dict[str, Any]) -> str:
    """Serialize a document the way it is written to disk."""
    return json.dumps(doc, indent=2, ensure_ascii=False) + "\n"


def write_json(path: Path, doc: dict[str, Any]) -> None:
    """Write a document to `path`. OSError propagates; there is no partial-write recovery."""
    with path.open("w", encoding="utf-8") as f:
        f.write(dumps_document(doc))
