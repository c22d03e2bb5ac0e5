"""Lending pool lender exposure analysis package."""

from typing import NoReturn

__version__ = "0.1.0"


def _entry_point() -> NoReturn:
    """Entry point for the lending-exposure script (merge)."""
    import sys

    from lending_exposure.cli import main

    raise SystemExit(main(sys.argv[1:]))


def _classify_entry_point() -> NoReturn:
    """Entry point for the borrow event classifier."""
    import sys

    from lending_exposure.cli import classify_main

    raise SystemExit(classify_main(sys.argv[1:]))


def _snapshot_entry_point() -> NoReturn:
    """Entry point for the on-chain snapshot collector."""
    import sys

    from lending_exposure.cli import snapshot_main

    raise SystemExit(snapshot_main(sys.argv[1:]))


def _clear_cache_entry_point() -> NoReturn:
    """Entry point for clearing the cache."""
    from lending_exposure.cache import clear_cache

    clear_cache()
    raise SystemExit(0)
