"""Input file loading and parsing."""

import json
from pathlib import Path
from typing import Any

from lending_exposure.errors import MalformedInputError, MissingReferenceDataError
from lending_exposure.formatters import as_decimal, as_int
from lending_exposure.models import BorrowEvent, VaultState

# Keys under which a source file may list its records, besides being a bare array.
RECORD_LIST_KEYS = ("holders", "stakers", "records")


def load_json_file(path: Path) -> Any:
    """Read and decode a JSON file. OSError and JSONDecodeError propagate."""
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def extract_records(doc: Any, *, source: str) -> list[dict[str, Any]]:
    """Return the record list of a source document.

    Accepts a bare JSON array or an object holding the array under one of RECORD_LIST_KEYS.
    """
    if isinstance(doc, dict):
        for key in RECORD_LIST_KEYS:
            if key in doc:
                doc = doc[key]
                break
        else:
            raise ValueError(f"{source}: expected one of {', '.join(RECORD_LIST_KEYS)} in input object")
    if not isinstance(doc, list):
        raise ValueError(f"{source}: unexpected input format (expected JSON array of records)")
    out: list[dict[str, Any]] = []
    for entry in doc:
        if not isinstance(entry, dict) or not entry.get("address"):
            raise MalformedInputError(address=None, source=source, field="address", raw=entry)
        out.append(entry)
    return out


def document_timestamp(doc: Any) -> str | None:
    """`timestamp` of an input document, if it carries one."""
    if isinstance(doc, dict) and doc.get("timestamp") is not None:
        return str(doc["timestamp"])
    return None


def parse_vault_state(doc: dict[str, Any]) -> VaultState:
    """
    Parse the vault reference snapshot.

    Required: price_per_share, total_supply_shares. Optional: total_assets_value,
    excluded_addresses, and any metadata (address, block, chain, ...) which is kept verbatim.
    """
    if not isinstance(doc, dict):
        raise ValueError("Unexpected vault state format (expected JSON object)")

    def _required(name: str):
        raw = doc.get(name)
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            raise MissingReferenceDataError(name)
        try:
            return as_decimal(raw)
        except ValueError as ex:
            raise MalformedInputError(address=doc.get("address"), source="vault_state", field=name, raw=raw) from ex

    price_per_share = _required("price_per_share")
    total_supply_shares = _required("total_supply_shares")

    total_assets_value = None
    raw_assets = doc.get("total_assets_value")
    if raw_assets is not None:
        try:
            total_assets_value = as_decimal(raw_assets)
        except ValueError as ex:
            raise MalformedInputError(
                address=doc.get("address"), source="vault_state", field="total_assets_value", raw=raw_assets
            ) from ex

    excluded = doc.get("excluded_addresses") or []
    if not isinstance(excluded, list):
        raise ValueError("vault_state: excluded_addresses must be a list of addresses")

    return VaultState(
        price_per_share=price_per_share,
        total_supply_shares=total_supply_shares,
        total_assets_value=total_assets_value,
        excluded_addresses=frozenset(str(a).lower() for a in excluded),
        raw={k: v for k, v in doc.items() if k != "excluded_addresses"},
    )


def parse_borrow_events(doc: Any) -> list[BorrowEvent]:
    """Parse borrow events (a bare array or {"borrow_events": [...]})."""
    if isinstance(doc, dict):
        doc = doc.get("borrow_events")
    if not isinstance(doc, list):
        raise ValueError("Unexpected borrow events format (expected borrow_events array)")

    out: list[BorrowEvent] = []
    for entry in doc:
        user = entry.get("user") if isinstance(entry, dict) else None
        if not user:
            raise MalformedInputError(address=None, source="borrow_events", field="user", raw=entry)

        def _num(name: str, *aliases: str):
            for key in (name, *aliases):
                if key in entry:
                    raw = entry[key]
                    try:
                        return as_decimal(raw)
                    except ValueError as ex:
                        raise MalformedInputError(address=user, source="borrow_events", field=key, raw=raw) from ex
            raise MalformedInputError(address=user, source="borrow_events", field=name, raw=None)

        def _count(name: str, *aliases: str) -> int:
            for key in (name, *aliases):
                if key in entry:
                    try:
                        return as_int(entry[key])
                    except (TypeError, ValueError) as ex:
                        raise MalformedInputError(
                            address=user, source="borrow_events", field=key, raw=entry[key]
                        ) from ex
            return 0

        out.append(
            BorrowEvent(
                tx_hash=str(entry.get("tx_hash") or entry.get("txHash") or ""),
                user=str(user),
                timestamp=str(entry.get("timestamp") or ""),
                selector=str(entry.get("selector") or entry.get("functionSelector") or "").lower(),
                log_count=_count("log_count", "totalLogCount"),
                transfer_count=_count("transfer_count", "transferCount"),
                collateral=_num("collateral", "collateral_increase", "collateral_increase_squid"),
                borrowed=_num("borrowed", "loan_increase", "loan_increase_crvusd"),
            )
        )
    return out
