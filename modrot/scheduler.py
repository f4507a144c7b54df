"""Bounded-concurrency lookups, deduplicated by key and fanned back out.

Every enrichment phase (vanity resolution, proxy metadata, deprecation
checks) has the same shape:

1. Walk the datasets once and map each lookup key to the locations that
   need it. This map is built before any task starts and is never mutated
   while tasks run.
2. Run one lookup per unique key, at most ``max_workers`` at a time.
   Each task only reads its key and puts one result on a queue.
3. After every task has finished, drain the queue and write each result to
   every location sharing its key.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Hashable, Sequence
from typing import TypeVar

import structlog

log = structlog.get_logger("modrot.scheduler")

T = TypeVar("T")
K = TypeVar("K", bound=Hashable)
R = TypeVar("R")

Location = tuple[int, int]  # (dataset index, item index)


def group_locations(
    datasets: Sequence[Sequence[T]],
    key: Callable[[T], K],
    needs: Callable[[T], bool] | None = None,
) -> dict[K, list[Location]]:
    """Map each lookup key to every (dataset, item) position that needs it."""
    locations: dict[K, list[Location]] = {}
    for i, items in enumerate(datasets):
        for j, item in enumerate(items):
            if needs is not None and not needs(item):
                continue
            locations.setdefault(key(item), []).append((i, j))
    return locations


async def run_enrichment_across(
    datasets: Sequence[Sequence[T]],
    lookup: Callable[[K], Awaitable[R | None]],
    apply: Callable[[T, R], None],
    *,
    key: Callable[[T], K],
    needs: Callable[[T], bool] | None = None,
    max_workers: int = 20,
    phase: str = "enrich",
) -> int:
    """Run ``lookup`` once per unique key across datasets and apply the results.

    Args:
        datasets: Lists of items, e.g. the modules of several go.mod files
        lookup: Coroutine computing a result for one key; None or an exception
            means "no result" for that key only
        apply: Writes a result onto one item
        key: Deduplication key for an item
        needs: Filter selecting items that still need a lookup
        max_workers: Maximum lookups in flight at once
        phase: Name used in log events

    Returns:
        Number of unique keys that produced a result
    """
    if max_workers < 1:
        raise ValueError("max_workers must be at least 1")

    locations = group_locations(datasets, key, needs)
    if not locations:
        return 0

    results: asyncio.Queue[tuple[K, R]] = asyncio.Queue(maxsize=len(locations))
    semaphore = asyncio.Semaphore(max_workers)

    async def worker(k: K) -> None:
        async with semaphore:
            try:
                result = await lookup(k)
            except Exception:
                log.warning(f"{phase}.lookup_failed", key=repr(k), exc_info=True)
                result = None
        if result is not None:
            results.put_nowait((k, result))

    log.debug(f"{phase}.start", keys=len(locations), max_workers=max_workers)
    await asyncio.gather(*(worker(k) for k in locations))

    produced = 0
    while not results.empty():
        k, result = results.get_nowait()
        for i, j in locations[k]:
            apply(datasets[i][j], result)
        produced += 1

    log.debug(f"{phase}.done", keys=len(locations), produced=produced)
    return produced


async def run_enrichment(
    items: Sequence[T],
    lookup: Callable[[K], Awaitable[R | None]],
    apply: Callable[[T, R], None],
    *,
    key: Callable[[T], K],
    needs: Callable[[T], bool] | None = None,
    max_workers: int = 20,
    phase: str = "enrich",
) -> int:
    """Single-dataset form of :func:`run_enrichment_across`."""
    return await run_enrichment_across(
        [items],
        lookup,
        apply,
        key=key,
        needs=needs,
        max_workers=max_workers,
        phase=phase,
    )
