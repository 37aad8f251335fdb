from __future__ import annotations

import asyncio
from typing import Any

import pytest

from chatrelay.services.model_catalog import ModelCatalog

pytestmark = pytest.mark.anyio


class DummyLister:
    def __init__(self) -> None:
        self.calls: list[str | None] = []

    async def list_models(self, api_key: str | None = None) -> list[dict[str, Any]]:
        self.calls.append(api_key)
        await asyncio.sleep(0)
        return [{"name": f"models/m{len(self.calls)}"}]


async def test_models_are_cached_between_calls() -> None:
    lister = DummyLister()
    catalog = ModelCatalog(lister)

    first = await catalog.get_models()
    second = await catalog.get_models()

    assert first == second == [{"name": "models/m1"}]
    assert len(lister.calls) == 1


async def test_force_refresh_bypasses_cache() -> None:
    lister = DummyLister()
    catalog = ModelCatalog(lister)

    await catalog.get_models()
    refreshed = await catalog.get_models(api_key="k", force_refresh=True)

    assert refreshed == [{"name": "models/m2"}]
    assert lister.calls == [None, "k"]


async def test_entries_expire_after_ttl() -> None:
    lister = DummyLister()
    catalog = ModelCatalog(lister, ttl_seconds=0)

    await catalog.get_models()
    await catalog.get_models()
    assert len(lister.calls) == 2


async def test_invalidate_forces_refetch() -> None:
    lister = DummyLister()
    catalog = ModelCatalog(lister)

    await catalog.get_models()
    catalog.invalidate()
    models = await catalog.get_models()

    assert models == [{"name": "models/m2"}]
    assert len(lister.calls) == 2


async def test_concurrent_callers_share_one_fetch() -> None:
    lister = DummyLister()
    catalog = ModelCatalog(lister)

    results = await asyncio.gather(*(catalog.get_models() for _ in range(5)))

    assert len(lister.calls) == 1
    assert all(result == [{"name": "models/m1"}] for result in results)


async def test_separate_catalogs_do_not_share_entries() -> None:
    second_lister = DummyLister()
    first = ModelCatalog(DummyLister())
    second = ModelCatalog(second_lister)

    await first.get_models()
    await second.get_models()

    assert len(second_lister.calls) == 1
