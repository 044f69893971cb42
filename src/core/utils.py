"""
Small shared utilities.
"""
from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Any, Generator, Iterable


@contextmanager
def timer() -> Generator[dict, None, None]:
    """Context manager that records elapsed wall-clock milliseconds."""
    result: dict = {}
    start = time.perf_counter()
    try:
        yield result
    finally:
        result["elapsed_ms"] = int((time.perf_counter() - start) * 1000)


def unique(values: Iterable[Any]) -> list[Any]:
    """De-duplicate preserving first-seen order (values compared by type + text)."""
    seen: set[str] = set()
    out: list[Any] = []
    for v in values:
        key = f"{type(v).__name__}:{v}"
        if key in seen:
            continue
        seen.add(key)
        out.append(v)
    return out
