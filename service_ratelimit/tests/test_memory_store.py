"""Tests for the in-process counter store."""

import pytest


class TestInMemoryStore:

    @pytest.mark.asyncio
    async def test_compare_and_set_semantics(self, store):
        assert await store.compare_and_set("k", None, "a", 10)
        assert not await store.compare_and_set("k", None, "b", 10)
        assert not await store.compare_and_set("k", "x", "b", 10)
        assert await store.compare_and_set("k", "a", "b", 10)
        assert await store.get("k") == "b"

    @pytest.mark.asyncio
    async def test_initialize_if_absent(self, store):
        assert await store.initialize_if_absent("k", "a", 10)
        assert not await store.initialize_if_absent("k", "b", 10)
        assert await store.get("k") == "a"

    @pytest.mark.asyncio
    async def test_keys_expire(self, store, clock):
        await store.initialize_if_absent("k", "a", 10)
        clock.advance(9)
        assert await store.ttl("k") == pytest.approx(1)

        clock.advance(1)
        assert await store.get("k") is None
        assert await store.ttl("k") is None
        assert "k" not in store._data

    @pytest.mark.asyncio
    async def test_expired_key_counts_as_absent_for_writes(self, store, clock):
        await store.initialize_if_absent("k", "a", 10)
        clock.advance(11)

        assert not await store.compare_and_set("k", "a", "b", 10)
        assert await store.compare_and_set("k", None, "b", 10)

    @pytest.mark.asyncio
    async def test_delete(self, store):
        await store.initialize_if_absent("k", "a", 10)
        assert await store.delete("k")
        assert not await store.delete("k")
        assert await store.ping()
