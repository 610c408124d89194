"""Tests for the bucket() factory."""

import pytest

from service_ratelimit.app import factory
from service_ratelimit.app.ratelimit import BucketState, TokenBucket


class TestBucketFactory:

    @pytest.mark.asyncio
    async def test_defaults_and_initialization(self, store, metrics):
        engine = await factory.bucket(store=store, metrics=metrics)

        assert isinstance(engine, TokenBucket)
        assert engine.rate == 5
        assert engine.burst == 10
        assert engine.key == "rate_limit:bucket:default"
        assert BucketState.decode(await store.get(engine.key)).tokens == 10

    @pytest.mark.asyncio
    async def test_overrides(self, store, clock, metrics):
        engine = await factory.bucket("uploads", rate=1, burst=3, prefix="media",
                                      store=store, clock=clock, metrics=metrics)

        assert engine.key == "media:bucket:uploads"
        assert (await engine.acquire(3)).allowed
        assert not (await engine.acquire()).allowed

    @pytest.mark.asyncio
    async def test_does_not_reset_existing_bucket(self, store, clock, metrics):
        engine = await factory.bucket("jobs", store=store, clock=clock, metrics=metrics)
        await engine.acquire(10)

        again = await factory.bucket("jobs", store=store, clock=clock, metrics=metrics)

        assert await again.remaining() == 0

    @pytest.mark.asyncio
    async def test_uses_default_store(self, monkeypatch, store, metrics):
        monkeypatch.setattr(factory, "get_default_store", lambda: store)

        engine = await factory.bucket("shared", metrics=metrics)

        assert engine.store is store
        assert await store.get(engine.key) is not None
