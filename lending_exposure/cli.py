"""CLI and main logic."""

import argparse
import os
import sys
from pathlib import Path

from lending_exposure.classifier import build_leverage_document, classify_events, combine_borrowers, summarize_borrowers
from lending_exposure.console import print_borrower_analysis, print_ledger_summary, print_warnings
from lending_exposure.constants import (
    BALANCE_OF_ABI,
    BORROW_EVENTS_FILE,
    CUSTODIAL_STAKE,
    CUSTODIAL_STAKERS_FILE,
    DEFAULT_LOG_CHUNK_SIZE,
    DEFAULT_TIMEOUT,
    DEFAULT_TOP_N,
    DIRECT_HOLDERS_FILE,
    DIRECT_HOLDING,
    DIRECT_SECONDARY_STAKE,
    LEDGER_OUTPUT_FILE,
    LEVERAGE_OUTPUT_FILE,
    SECONDARY_STAKERS_FILE,
    SOURCE_FILES,
    STAKED_EVENT_SIGNATURE,
    TRANSFER_EVENT_SIGNATURE,
    VAULT_MIN_ABI,
    VAULT_STATE_FILE,
)
from lending_exposure.merger import default_sources, merge_positions
from lending_exposure.parsing import (
    document_timestamp,
    extract_records,
    load_json_file,
    parse_borrow_events,
    parse_vault_state,
)
from lending_exposure.reports import build_ledger_document, utc_now_iso, write_json
from lending_exposure.validation import validate_coverage, validate_ledger_conservation, validate_vault_state


def parse_args(argv: list[str]) -> argparse.Namespace:
    """Parse command-line arguments for the merge command."""
    p = argparse.ArgumentParser(
        description="Merge direct holders, custodial stakers and direct secondary stakers into one lender ledger."
    )
    p.add_argument(
        "--data-dir",
        default=".",
        help=f"Directory holding {VAULT_STATE_FILE} and the three source files. Default: current directory.",
    )
    p.add_argument(
        "--output",
        default=None,
        help=f"Output path. Default: <data-dir>/{LEDGER_OUTPUT_FILE}.",
    )
    p.add_argument("--top", type=int, default=DEFAULT_TOP_N, help="Number of lenders to print. Default: 10.")
    return p.parse_args(argv)


def run_merge(data_dir: Path, output: Path, *, top: int = DEFAULT_TOP_N) -> dict:
    """Load inputs, merge, validate, write the ledger and print the summary. Returns the written document."""
    vault_state = parse_vault_state(load_json_file(data_dir / VAULT_STATE_FILE))
    print_warnings("Vault state warnings", validate_vault_state(vault_state))

    docs = {category: load_json_file(data_dir / name) for category, name in SOURCE_FILES.items()}
    records = {category: extract_records(doc, source=category) for category, doc in docs.items()}

    ledger = merge_positions(
        default_sources(records[DIRECT_HOLDING], records[CUSTODIAL_STAKE], records[DIRECT_SECONDARY_STAKE]),
        price_per_share=vault_state.price_per_share,
        total_supply_shares=vault_state.total_supply_shares,
        excluded_addresses=vault_state.excluded_addresses,
    )
    print_warnings("Ledger consistency warnings", validate_ledger_conservation(ledger))
    print_warnings("Coverage warnings", validate_coverage(ledger.summary.coverage_pct))

    timestamps = {SOURCE_FILES[c]: ts for c, doc in docs.items() if (ts := document_timestamp(doc)) is not None}
    vault_ts = document_timestamp(vault_state.raw)
    if vault_ts is not None:
        timestamps[VAULT_STATE_FILE] = vault_ts

    doc = build_ledger_document(ledger, vault_state, source_timestamps=timestamps)
    write_json(output, doc)

    print_ledger_summary(ledger, vault_state, top=top)
    print(f"Written to: {output}")
    return doc


def main(argv: list[str]) -> int:
    """Main entry point (merge)."""
    args = parse_args(argv)
    data_dir = Path(args.data_dir)
    output = Path(args.output) if args.output else data_dir / LEDGER_OUTPUT_FILE

    try:
        run_merge(data_dir, output, top=args.top)
    except (ValueError, OSError) as ex:
        # LedgerError and JSONDecodeError are ValueErrors; no partial output is written.
        print(f"Error: {ex}", file=sys.stderr)
        return 2
    return 0


def parse_classify_args(argv: list[str]) -> argparse.Namespace:
    """Parse command-line arguments for the classify command."""
    p = argparse.ArgumentParser(description="Classify borrow transactions as standard or leverage by selector.")
    p.add_argument("--data-dir", default=".", help="Directory holding the events file. Default: current directory.")
    p.add_argument("--events", default=None, help=f"Events file. Default: <data-dir>/{BORROW_EVENTS_FILE}.")
    p.add_argument("--output", default=None, help=f"Output path. Default: <data-dir>/{LEVERAGE_OUTPUT_FILE}.")
    p.add_argument(
        "--watch",
        action="append",
        default=[],
        metavar="ADDRESS",
        help="Wallet to include in a combined view (repeatable).",
    )
    return p.parse_args(argv)


def classify_main(argv: list[str]) -> int:
    """Entry point for the borrow event classifier."""
    args = parse_classify_args(argv)
    data_dir = Path(args.data_dir)
    events_path = Path(args.events) if args.events else data_dir / BORROW_EVENTS_FILE
    output = Path(args.output) if args.output else data_dir / LEVERAGE_OUTPUT_FILE

    try:
        events = parse_borrow_events(load_json_file(events_path))
        classified = classify_events(events)
        summaries = summarize_borrowers(classified)
        combined = combine_borrowers(summaries, args.watch) if args.watch else None
        if args.watch and combined is None:
            print("⚠️  Not every --watch address has borrow events; combined view skipped.", file=sys.stderr)

        print_warnings("Selector/log-count mismatches", [c.warning for c in classified if c.warning])
        doc = build_leverage_document(classified, summaries, analysis_date=utc_now_iso(), combined=combined)
        write_json(output, doc)
    except (ValueError, OSError) as ex:
        print(f"Error: {ex}", file=sys.stderr)
        return 2

    print_borrower_analysis(summaries, combined=combined)
    print(f"Analysis saved to: {output}")
    return 0


def parse_snapshot_args(argv: list[str]) -> argparse.Namespace:
    """Parse command-line arguments for the on-chain snapshot command."""
    p = argparse.ArgumentParser(description="Collect vault state and lender positions from chain into input files.")
    p.add_argument(
        "--rpc-url",
        default=None,
        help="Execution-layer RPC URL. Required if ETH_RPC_URL environment variable is not set.",
    )
    p.add_argument("--vault", required=True, help="Lending vault (share token) address.")
    p.add_argument("--reward-contract", default=None, help="Custodial reward pool tracking per-user stakes.")
    p.add_argument("--gauge", default=None, help="Secondary staking contract (gauge) holding vault shares.")
    p.add_argument(
        "--custodial-proxy",
        default=None,
        help="Address holding gauge shares for the custodial reward pool; not a direct secondary staker.",
    )
    p.add_argument(
        "--exclude",
        action="append",
        default=[],
        metavar="ADDRESS",
        help="Extra infrastructure address to exclude from direct holders (repeatable).",
    )
    p.add_argument(
        "--controller",
        default=None,
        help=f"Lending controller emitting Borrow events; when set, also writes {BORROW_EVENTS_FILE}.",
    )
    p.add_argument("--from-block", type=int, default=0, help="First block to scan for participants. Default: 0.")
    p.add_argument("--chunk-size", type=int, default=DEFAULT_LOG_CHUNK_SIZE, help="Blocks per eth_getLogs call.")
    p.add_argument("--chain", default=None, help="Chain label recorded in the snapshot metadata.")
    p.add_argument("--data-dir", default=".", help="Directory to write the input files to. Default: current directory.")
    p.add_argument(
        "--no-cache",
        action="store_true",
        help="Disable caching for this run (fetch all logs fresh from network).",
    )
    return p.parse_args(argv)


def snapshot_main(argv: list[str]) -> int:
    """Entry point for the on-chain snapshot collector."""
    args = parse_snapshot_args(argv)
    use_cache = not args.no_cache

    try:
        from web3 import Web3
    except ImportError as ex:  # pragma: no cover
        print("Missing dependency. Run: pip install -e .", file=sys.stderr)
        raise SystemExit(2) from ex

    from lending_exposure.blockchain import collect_borrow_events, discover_participants, topic0
    from lending_exposure.onchain import fetch_positive_balances, read_vault_state

    rpc_url = args.rpc_url or os.getenv("ETH_RPC_URL")
    if not rpc_url:
        print(
            "Error: RPC URL is required. Provide --rpc-url or set ETH_RPC_URL environment variable.",
            file=sys.stderr,
        )
        return 2

    w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": DEFAULT_TIMEOUT}))
    if not w3.is_connected():
        print(f"Error: failed to connect to RPC at {rpc_url}", file=sys.stderr)
        return 2

    data_dir = Path(args.data_dir)
    try:
        block = int(w3.eth.block_number)
        timestamp = utc_now_iso()
        meta = {"timestamp": timestamp, "block": block, "chain": args.chain}
        print(f"ℹ️ Snapshot at block {block}", file=sys.stderr)

        vault = w3.eth.contract(address=Web3.to_checksum_address(args.vault), abi=VAULT_MIN_ABI)
        state = read_vault_state(vault, block_identifier=block)
        decimals = state.pop("decimals")
        transfer_topic = topic0(TRANSFER_EVENT_SIGNATURE)

        scan = {"from_block": args.from_block, "to_block": block, "chunk_size": args.chunk_size, "use_cache": use_cache}

        # Anyone who ever received vault shares may still hold some.
        recipients = discover_participants(w3, args.vault, transfer_topic, topic_index=2, **scan)
        holders = fetch_positive_balances(
            w3, vault, recipients, decimals=decimals, block_identifier=block, desc="💰 Vault balances"
        )

        custodial: list[dict[str, str]] = []
        if args.reward_contract:
            reward = w3.eth.contract(address=Web3.to_checksum_address(args.reward_contract), abi=BALANCE_OF_ABI)
            stakers = discover_participants(
                w3, args.reward_contract, topic0(STAKED_EVENT_SIGNATURE), topic_index=1, **scan
            )
            custodial = fetch_positive_balances(
                w3, reward, stakers, decimals=decimals, block_identifier=block, desc="💰 Custodial balances"
            )

        secondary: list[dict[str, str]] = []
        if args.gauge:
            gauge = w3.eth.contract(address=Web3.to_checksum_address(args.gauge), abi=BALANCE_OF_ABI)
            gauge_recipients = discover_participants(w3, args.gauge, transfer_topic, topic_index=2, **scan)
            secondary = fetch_positive_balances(
                w3,
                gauge,
                gauge_recipients,
                decimals=decimals,
                block_identifier=block,
                skip=[args.custodial_proxy] if args.custodial_proxy else [],
                desc="💰 Gauge balances",
            )

        excluded = [a for a in (args.gauge, args.custodial_proxy, args.reward_contract) if a] + list(args.exclude)

        borrow_events: list[dict] | None = None
        if args.controller:
            borrow_events = collect_borrow_events(w3, args.controller, **scan)

        data_dir.mkdir(parents=True, exist_ok=True)
        write_json(
            data_dir / VAULT_STATE_FILE,
            {"address": args.vault, **meta, **state, "excluded_addresses": excluded},
        )
        write_json(data_dir / DIRECT_HOLDERS_FILE, {**meta, "holders": holders})
        write_json(data_dir / CUSTODIAL_STAKERS_FILE, {**meta, "holders": custodial})
        write_json(data_dir / SECONDARY_STAKERS_FILE, {**meta, "holders": secondary})
        if borrow_events is not None:
            write_json(
                data_dir / BORROW_EVENTS_FILE,
                {**meta, "controller": args.controller, "borrow_events": borrow_events},
            )
    except (ValueError, RuntimeError, OSError) as ex:
        print(f"Error: {ex}", file=sys.stderr)
        return 2

    print(f"✅ {len(holders)} direct holders, {len(custodial)} custodial stakers, {len(secondary)} direct stakers")
    if borrow_events is not None:
        print(f"✅ {len(borrow_events)} borrow events")
    print(f"Written to: {data_dir}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
