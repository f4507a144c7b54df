"""Tests for the deduplicating bounded-concurrency scheduler."""

import asyncio
from dataclasses import dataclass

import pytest

from modrot.scheduler import group_locations, run_enrichment, run_enrichment_across


@dataclass
class Item:
    key: str
    value: str = ""


def set_value(item: Item, value: str) -> None:
    item.value = value


class TestGroupLocations:
    def test_groups_across_datasets(self):
        datasets = [[Item("a"), Item("b")], [Item("a"), Item("c")]]

        locations = group_locations(datasets, key=lambda it: it.key)

        assert locations == {"a": [(0, 0), (1, 0)], "b": [(0, 1)], "c": [(1, 1)]}

    def test_filter(self):
        datasets = [[Item("a", "done"), Item("b")]]

        locations = group_locations(datasets, key=lambda it: it.key, needs=lambda it: not it.value)

        assert list(locations) == ["b"]


class TestRunEnrichment:
    """Test dedupe, bounding and fan-out."""

    @pytest.mark.asyncio
    async def test_one_lookup_per_key_across_datasets(self):
        """Shared keys are looked up once and written to every occurrence."""
        datasets = [[Item("x"), Item("y")], [Item("x"), Item("z")], [Item("x")]]
        calls = []

        async def lookup(key: str) -> str:
            calls.append(key)
            return key.upper()

        produced = await run_enrichment_across(datasets, lookup, set_value, key=lambda it: it.key)

        assert sorted(calls) == ["x", "y", "z"]
        assert produced == 3
        assert [[it.value for it in items] for items in datasets] == [["X", "Y"], ["X", "Z"], ["X"]]

    @pytest.mark.asyncio
    async def test_bounded_concurrency(self):
        """No more than max_workers lookups are ever in flight."""
        items = [Item(f"k{i}") for i in range(25)]
        in_flight = 0
        peak = 0

        async def lookup(key: str) -> str:
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.001)
            in_flight -= 1
            return key

        await run_enrichment(items, lookup, set_value, key=lambda it: it.key, max_workers=4)

        assert 1 <= peak <= 4
        assert all(it.value == it.key for it in items)

    @pytest.mark.asyncio
    async def test_results_not_visible_until_join(self):
        """Items are untouched while lookups are still running."""
        items = [Item("a"), Item("b")]
        observed = []

        async def lookup(key: str) -> str:
            await asyncio.sleep(0)
            observed.append([it.value for it in items])
            return "set"

        await run_enrichment(items, lookup, set_value, key=lambda it: it.key)

        assert observed == [["", ""], ["", ""]]
        assert [it.value for it in items] == ["set", "set"]

    @pytest.mark.asyncio
    async def test_none_result_leaves_item_unchanged(self):
        items = [Item("hit"), Item("miss", "original")]

        async def lookup(key: str) -> str | None:
            return "found" if key == "hit" else None

        produced = await run_enrichment(items, lookup, set_value, key=lambda it: it.key)

        assert produced == 1
        assert items[0].value == "found"
        assert items[1].value == "original"

    @pytest.mark.asyncio
    async def test_failing_lookup_does_not_abort_others(self):
        """A lookup that raises leaves its items alone; other keys are still applied."""
        items = [Item("good"), Item("bad", "original"), Item("good")]

        async def lookup(key: str) -> str:
            if key == "bad":
                raise TypeError("unexpected payload")
            return "resolved"

        produced = await run_enrichment(items, lookup, set_value, key=lambda it: it.key)

        assert produced == 1
        assert [it.value for it in items] == ["resolved", "original", "resolved"]

    @pytest.mark.asyncio
    async def test_empty_input_makes_no_calls(self):
        async def lookup(key):
            raise AssertionError("no lookups expected")

        assert await run_enrichment_across([], lookup, set_value, key=lambda it: it.key) == 0
        assert await run_enrichment_across([[], []], lookup, set_value, key=lambda it: it.key) == 0

    @pytest.mark.asyncio
    async def test_filtered_items_skipped(self):
        items = [Item("a", "already"), Item("b")]
        calls = []

        async def lookup(key):
            calls.append(key)
            return "new"

        await run_enrichment(items, lookup, set_value, key=lambda it: it.key, needs=lambda it: not it.value)

        assert calls == ["b"]
        assert items[0].value == "already"

    @pytest.mark.asyncio
    async def test_rerun_is_idempotent(self):
        items = [Item("a"), Item("a"), Item("b")]

        async def lookup(key):
            return key * 2

        await run_enrichment(items, lookup, set_value, key=lambda it: it.key)
        first = [it.value for it in items]
        await run_enrichment(items, lookup, set_value, key=lambda it: it.key)

        assert [it.value for it in items] == first == ["aa", "aa", "bb"]

    @pytest.mark.asyncio
    async def test_invalid_worker_count(self):
        async def lookup(key):
            return key

        with pytest.raises(ValueError):
            await run_enrichment([Item("a")], lookup, set_value, key=lambda it: it.key, max_workers=0)
