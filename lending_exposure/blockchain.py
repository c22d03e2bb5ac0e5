"""Log scanning for participant discovery and borrow event collection, with caching."""

import sys
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from tqdm import tqdm

from lending_exposure.cache import cache_key, get_cached, set_cached
from lending_exposure.constants import (
    BORROW_AMOUNT_DECIMALS,
    BORROW_EVENT_SIGNATURE,
    DEFAULT_LOG_CHUNK_SIZE,
    TRANSFER_EVENT_SIGNATURE,
    ZERO_ADDRESS,
)
from lending_exposure.formatters import as_int, format_units
from lending_exposure.reports import unix_to_iso

if TYPE_CHECKING:
    from web3 import Web3  # pragma: no cover


def normalize_hex_str(value) -> str:
    """Normalize hex string to 0x-prefixed format."""
    if isinstance(value, (bytes, bytearray)):
        return f"0x{value.hex()}"
    if hasattr(value, "hex") and not isinstance(value, str):
        hex_str = value.hex()
        return hex_str if hex_str.startswith("0x") else f"0x{hex_str}"
    s = str(value).strip()
    if s.lower().startswith("0x"):
        return f"0x{s[2:]}"
    return f"0x{s}"


def topic0(signature: str) -> str:
    """Compute topic0 (keccak of the event signature)."""
    from web3 import Web3  # pylint: disable=import-outside-toplevel

    return normalize_hex_str(Web3.keccak(text=signature))


def topic_to_address(topic) -> str:
    """Extract the address from a 32-byte indexed topic (last 20 bytes), lowercased."""
    hex_str = normalize_hex_str(topic)[2:]
    if len(hex_str) < 40:
        raise ValueError(f"topic too short for an address: {topic!r}")
    return f"0x{hex_str[-40:].lower()}"


def iter_block_ranges(start: int, end: int, chunk_size: int) -> Iterable[tuple[int, int]]:
    """Iterate over inclusive block ranges in chunks."""
    if chunk_size <= 0:
        raise ValueError("chunk_size must be > 0")
    cur = start
    while cur <= end:
        yield cur, min(end, cur + chunk_size - 1)
        cur += chunk_size


def get_cached_logs(w3: "Web3", filter_params: dict[str, Any], use_cache: bool = True) -> list[dict[str, Any]]:
    """eth_getLogs with caching. RPC errors are raised, never skipped."""
    key = cache_key(
        "logs",
        filter_params.get("address", ""),
        filter_params.get("fromBlock", ""),
        filter_params.get("toBlock", ""),
        str(filter_params.get("topics", [])),
    )
    if use_cache:
        cached = get_cached(key)
        if cached is not None:
            return cached

    # provider.make_request keeps raw hex strings (JSON-serializable for the cache)
    response = w3.provider.make_request("eth_getLogs", [filter_params])
    if "error" in response:
        raise RuntimeError(f"RPC error: {response['error']}")
    result = response.get("result", [])
    if use_cache:
        set_cached(key, result)
    return result


# Transaction and block fields kept in the cache; the rest is not JSON-serializable in general.
TX_FIELDS = ("hash", "blockNumber", "from", "to", "input")
BLOCK_FIELDS = ("number", "hash", "timestamp")


def _json_fields(obj: Any, fields: Iterable[str]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for name in fields:
        value = obj.get(name)
        if hasattr(value, "hex") and not isinstance(value, (str, int, float)):
            value = normalize_hex_str(value)
        out[name] = value
    return out


def get_cached_transaction(w3: "Web3", tx_hash: str, use_cache: bool = True) -> dict[str, Any]:
    """Get transaction with caching. Returns a dict of TX_FIELDS with hex strings."""
    key = cache_key("tx", tx_hash)
    if use_cache:
        cached = get_cached(key)
        if cached is not None:
            return cached

    tx_dict = _json_fields(w3.eth.get_transaction(tx_hash), TX_FIELDS)
    if use_cache:
        set_cached(key, tx_dict)
    return tx_dict


def get_cached_receipt(w3: "Web3", tx_hash: str, use_cache: bool = True) -> dict[str, Any]:
    """eth_getTransactionReceipt with caching; raw JSON like get_cached_logs."""
    key = cache_key("receipt", tx_hash)
    if use_cache:
        cached = get_cached(key)
        if cached is not None:
            return cached

    response = w3.provider.make_request("eth_getTransactionReceipt", [tx_hash])
    if "error" in response:
        raise RuntimeError(f"RPC error: {response['error']}")
    receipt = response.get("result")
    if receipt is None:
        raise RuntimeError(f"No receipt for transaction {tx_hash}")
    if use_cache:
        set_cached(key, receipt)
    return receipt


def get_cached_block(w3: "Web3", block_number: int, use_cache: bool = True) -> dict[str, Any]:
    """Get block with caching. Returns a dict of BLOCK_FIELDS."""
    key = cache_key("block", str(block_number))
    if use_cache:
        cached = get_cached(key)
        if cached is not None:
            return cached

    block_dict = _json_fields(w3.eth.get_block(block_number), BLOCK_FIELDS)
    if use_cache:
        set_cached(key, block_dict)
    return block_dict


def discover_participants(
    w3: "Web3",
    contract_address: str,
    topic: str,
    *,
    topic_index: int,
    from_block: int,
    to_block: int,
    chunk_size: int = DEFAULT_LOG_CHUNK_SIZE,
    use_cache: bool = True,
) -> list[str]:
    """
    Scan a contract's logs for `topic` and collect the address indexed at `topics[topic_index]`.

    Returns lowercased addresses in first-seen order, without the zero address.
    """
    ranges = list(iter_block_ranges(from_block, to_block, chunk_size))
    seen: dict[str, None] = {}
    with tqdm(ranges, desc=f"🔍 Scanning {contract_address[:10]}... logs", unit="chunk", file=sys.stderr) as pbar:
        for a, b in pbar:
            filter_params = {
                "address": normalize_hex_str(contract_address),
                "fromBlock": hex(a),
                "toBlock": hex(b),
                "topics": [topic],
            }
            for log in get_cached_logs(w3, filter_params, use_cache=use_cache):
                topics = log.get("topics") or []
                if len(topics) <= topic_index:
                    continue
                addr = topic_to_address(topics[topic_index])
                if addr != ZERO_ADDRESS:
                    seen.setdefault(addr, None)
            pbar.set_postfix(found=len(seen))
    return list(seen)


def decode_uint256_words(data) -> list[int]:
    """Split ABI-encoded log data into uint256 words."""
    hex_str = normalize_hex_str(data)[2:]
    return [int(hex_str[i : i + 64], 16) for i in range(0, len(hex_str) - 63, 64)]


def collect_borrow_events(
    w3: "Web3",
    controller_address: str,
    *,
    from_block: int,
    to_block: int,
    chunk_size: int = DEFAULT_LOG_CHUNK_SIZE,
    amount_decimals: int = BORROW_AMOUNT_DECIMALS,
    use_cache: bool = True,
) -> list[dict[str, Any]]:
    """
    Collect the controller's Borrow events, in chain order.

    For each event the calling transaction supplies the 4-byte selector, its receipt the
    total log count and the ERC-20 Transfer count, and its block the timestamp. Records
    use the field names `parse_borrow_events` reads.
    """
    borrow_topic = topic0(BORROW_EVENT_SIGNATURE)
    transfer_topic = topic0(TRANSFER_EVENT_SIGNATURE).lower()
    controller = normalize_hex_str(controller_address)
    ranges = list(iter_block_ranges(from_block, to_block, chunk_size))

    logs: list[dict[str, Any]] = []
    with tqdm(ranges, desc="🔍 Scanning Borrow events", unit="chunk", file=sys.stderr) as pbar:
        for a, b in pbar:
            filter_params = {
                "address": controller,
                "fromBlock": hex(a),
                "toBlock": hex(b),
                "topics": [borrow_topic],
            }
            logs.extend(get_cached_logs(w3, filter_params, use_cache=use_cache))
            pbar.set_postfix(found=len(logs))

    # Raw JSON-RPC logs carry hex strings; normalize for sorting
    logs.sort(key=lambda x: (as_int(x.get("blockNumber")), as_int(x.get("logIndex"))))

    events: list[dict[str, Any]] = []
    for log in tqdm(logs, desc="🧾 Reading borrow transactions", unit="tx", file=sys.stderr):
        tx_hash = normalize_hex_str(log["transactionHash"])
        topics = log.get("topics") or []
        words = decode_uint256_words(log.get("data") or "0x")
        if len(topics) < 2 or len(words) < 2:
            raise ValueError(f"Unexpected Borrow log layout in {tx_hash}")

        block_number = as_int(log["blockNumber"])
        tx = get_cached_transaction(w3, tx_hash, use_cache=use_cache)
        receipt_logs = get_cached_receipt(w3, tx_hash, use_cache=use_cache).get("logs") or []
        block = get_cached_block(w3, block_number, use_cache=use_cache)

        events.append(
            {
                "tx_hash": tx_hash,
                "block_number": block_number,
                "timestamp": unix_to_iso(as_int(block["timestamp"])),
                "user": topic_to_address(topics[1]),
                "selector": normalize_hex_str(tx.get("input") or "0x")[:10].lower(),
                "log_count": len(receipt_logs),
                "transfer_count": sum(
                    1 for entry in receipt_logs if (entry.get("topics") or [""])[0].lower() == transfer_topic
                ),
                "collateral": format_units(words[0], amount_decimals),
                "borrowed": format_units(words[1], amount_decimals),
            }
        )
    return events
