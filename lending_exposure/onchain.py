"""On-chain reads: vault reference state and participant balances."""

import sys
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from tqdm import tqdm

from lending_exposure.formatters import format_units

if TYPE_CHECKING:
    from web3 import Web3  # pragma: no cover


def read_vault_state(vault_contract: Any, *, block_identifier: int | str = "latest") -> dict[str, Any]:
    """
    Read the vault reference snapshot.

    Returns decimal strings (scaled by the vault's `decimals`) ready for vault_state.json.
    """
    decimals = int(vault_contract.functions.decimals().call(block_identifier=block_identifier))
    total_supply = vault_contract.functions.totalSupply().call(block_identifier=block_identifier)
    total_assets = vault_contract.functions.totalAssets().call(block_identifier=block_identifier)
    price_per_share = vault_contract.functions.pricePerShare().call(block_identifier=block_identifier)
    return {
        "decimals": decimals,
        "total_supply_shares": format_units(int(total_supply), decimals),
        "total_assets_value": format_units(int(total_assets), decimals),
        "price_per_share": format_units(int(price_per_share), decimals),
    }


def fetch_positive_balances(
    w3: "Web3",
    token_contract: Any,
    addresses: Iterable[str],
    *,
    decimals: int,
    block_identifier: int | str = "latest",
    skip: Iterable[str] = (),
    desc: str = "💰 Reading balances",
) -> list[dict[str, str]]:
    """
    `balanceOf` for each address; returns [{address, shares}] for non-zero balances only.

    Records are sorted by balance descending; addresses are checksummed.
    """
    skipped = {a.lower() for a in skip}
    todo = [a for a in addresses if a.lower() not in skipped]
    found: list[tuple[int, str]] = []
    with tqdm(todo, desc=desc, unit="addr", file=sys.stderr) as pbar:
        for addr in pbar:
            checksum = w3.to_checksum_address(addr)
            balance = int(token_contract.functions.balanceOf(checksum).call(block_identifier=block_identifier))
            if balance > 0:
                found.append((balance, checksum))
            pbar.set_postfix(holders=len(found))

    found.sort(key=lambda item: item[0], reverse=True)
    return [{"address": addr, "shares": format_units(balance, decimals)} for balance, addr in found]
