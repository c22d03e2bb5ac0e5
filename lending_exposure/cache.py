"""On-disk JSON cache for RPC log scans."""

import hashlib
import json
import os
import shutil
import sys
from pathlib import Path
from typing import Any

from lending_exposure.constants import CACHE_DIR_NAME, CACHE_VERSION


def get_cache_dir() -> Path:
    """Get the cache directory path. Uses XDG_CACHE_HOME if available, otherwise ~/.cache."""
    cache_home = os.getenv("XDG_CACHE_HOME")
    base = Path(cache_home) if cache_home else Path.home() / ".cache"
    cache_dir = base / CACHE_DIR_NAME
    cache_dir.mkdir(parents=True, exist_ok=True)
    return cache_dir


def clear_cache() -> None:
    """Remove all cached data."""
    cache_dir = get_cache_dir()
    shutil.rmtree(cache_dir)
    print("✅ Cache cleared successfully.", file=sys.stderr)


def cache_key(prefix: str, *parts: Any) -> str:
    """Deterministic cache key from prefix and parts."""
    key_str = f"{prefix}:{CACHE_VERSION}:" + ":".join(str(p) for p in parts)
    return hashlib.sha256(key_str.encode()).hexdigest()


def get_cached(key: str) -> Any | None:
    """Cached data by key, or None if missing or unreadable."""
    cache_file = get_cache_dir() / f"{key}.json"
    if not cache_file.exists():
        return None
    try:
        with cache_file.open("r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError):
        # Corrupted entry: refetch
        return None


def set_cached(key: str, data: Any) -> None:
    """Store data in cache. A failed write only costs a refetch next time."""
    cache_file = get_cache_dir() / f"{key}.json"
    try:
        with cache_file.open("w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, separators=(",", ":"))
    except OSError as ex:
        print(f"⚠️  Cache write failed ({cache_file}): {ex}", file=sys.stderr)
