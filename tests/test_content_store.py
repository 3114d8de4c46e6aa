"""Tests for the persisted content aggregate."""
import asyncio

import pytest

from core.errors import InvalidRequestError
from services.content_store import ContentStore
from services.database import Database, MemoryKeyValueStore


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        kv = MemoryKeyValueStore()
    else:
        kv = Database(str(tmp_path / "data" / "news.db"))
    return ContentStore(kv, max_contents=3, max_comparisons=2)


def test_add_contents_persists_and_updates_metadata(store, make_processed):
    async def run():
        total = await store.add_contents([make_processed("a"), make_processed("b")])
        return total, await store.get_contents(), await store.get_metadata()

    total, contents, metadata = asyncio.run(run())

    assert total == 2
    assert [c.raw_content_id for c in contents] == ["a", "b"]
    assert metadata["last_fetched_at"] is not None
    assert metadata["content_count"] == 2


def test_content_retention(store, make_processed):
    async def run():
        await store.add_contents([make_processed("a"), make_processed("b")])
        await store.add_contents([make_processed("c"), make_processed("d")])
        return await store.get_contents()

    contents = asyncio.run(run())

    assert [c.raw_content_id for c in contents] == ["c", "d", "a"]


def test_update_rating(store, make_processed, make_summary):
    content = make_processed("a", summaries=[make_summary("model-a")])
    summary_id = content.summaries[0].id

    async def run():
        await store.add_contents([content])
        found = await store.update_rating(content.id, summary_id, 4)
        missing = await store.update_rating("nope", summary_id, 4)
        return found, missing, await store.get_contents()

    found, missing, contents = asyncio.run(run())

    assert found is True
    assert missing is False
    assert contents[0].summaries[0].rating.score == 4


def test_rating_out_of_range_is_rejected(store):
    with pytest.raises(InvalidRequestError):
        asyncio.run(store.update_rating("a", "s", 6))


def test_record_comparison_validates_and_keeps_latest(store):
    async def run():
        for winner in ("model-a", "tie", "model-b"):
            await store.record_comparison("c1", "model-a", "model-b", winner)
        return await store.get_comparisons()

    comparisons = asyncio.run(run())

    assert [c.winner for c in comparisons] == ["tie", "model-b"]

    with pytest.raises(InvalidRequestError):
        asyncio.run(store.record_comparison("c1", "model-a", "model-a", "model-a"))
    with pytest.raises(InvalidRequestError):
        asyncio.run(store.record_comparison("c1", "model-a", "model-b", "model-c"))


def test_get_news_filters_and_stats(store, models, make_processed, make_summary):
    async def run():
        await store.add_contents([
            make_processed("a", summaries=[make_summary("model-a")]),
            make_processed("b", source_id="jane", source_type="microblog"),
        ])
        await store.record_comparison("processed-a", "model-a", "model-b", "model-a")
        return (
            await store.get_news(models),
            await store.get_news(models, source_type="microblog"),
            await store.get_news(models, category="research"),
        )

    everything, microblog, research = asyncio.run(run())

    assert len(everything.contents) == 2
    assert everything.last_updated is not None
    assert [c.raw_content_id for c in microblog.contents] == ["b"]
    assert research.contents == []
    stats = {s.model_id: s for s in everything.stats}
    assert stats["model-a"].wins == 1
    assert stats["model-a"].total_summaries == 2
    assert stats["model-c"].total_summaries == 0


def test_read_storage_data_defaults(store):
    data = asyncio.run(store.read_storage_data())

    assert data.contents == []
    assert data.comparisons == []
    assert data.last_fetched_at is None


def test_last_email_sent_is_tracked(store):
    async def run():
        await store.update_last_email_sent()
        return await store.read_storage_data(), await store.get_metadata()

    data, metadata = asyncio.run(run())

    assert data.last_email_sent_at is not None
    assert metadata["last_fetched_at"] is None
    assert metadata["comparison_count"] == 0


def test_sqlite_store_survives_reopen(tmp_path, make_processed):
    path = str(tmp_path / "news.db")

    asyncio.run(ContentStore(Database(path)).add_contents([make_processed("a")]))
    contents = asyncio.run(ContentStore(Database(path)).get_contents())

    assert [c.raw_content_id for c in contents] == ["a"]
