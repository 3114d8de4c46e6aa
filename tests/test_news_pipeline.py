"""End-to-end tests for the fetch / summarize / store cycle."""
import asyncio
from datetime import datetime, timezone

import httpx
import pytest

from core.entities import ModelConfig
from core.errors import InvalidRequestError, PipelineFailure, RateLimitError
from ingestion.base import FetchReport, SourceAdapter
from ingestion.rss import RSSAdapter
from services.config import Config, SourceConfig
from services.content_store import ContentStore
from services.database import MemoryKeyValueStore
from workflows import NewsPipeline, PipelineRequest

FEED = """<?xml version="1.0"?>
<rss version="2.0"><channel><title>Blog</title>
  <item>
    <title>Lab releases open weights reasoning model</title>
    <link>https://blog.example.com/open-weights</link>
    <pubDate>Tue, 14 Jan 2025 10:30:00 GMT</pubDate>
    <description>The lab released a reasoning model with open weights and a detailed technical report.</description>
  </item>
  <item>
    <title>New evaluation suite for coding agents</title>
    <link>https://blog.example.com/agent-evals</link>
    <pubDate>Mon, 13 Jan 2025 10:30:00 GMT</pubDate>
    <description>A benchmark of real repository tasks measures how well coding agents handle long horizons.</description>
  </item>
</channel></rss>"""

MODELS = [ModelConfig(id="model-a", name="Model A"), ModelConfig(id="model-b", name="Model B")]


class StaticAdapter(SourceAdapter):
    """Returns pre-built items, failures or raises for a whole source type."""

    def __init__(self, source_type, items=(), failures=None, error=None):
        self.source_type = source_type
        self.items = list(items)
        self.failures = failures or {}
        self.error = error
        self.calls = 0

    async def fetch_items(self, sources):
        self.calls += 1
        if self.error:
            raise self.error
        report = FetchReport(source_type=self.source_type)
        report.attempted.extend(s.id for s in sources)
        report.items.extend(self.items)
        for source_id, error in self.failures.items():
            report.record_failure(source_id, error)
        return report


def make_config(**overrides):
    data = dict(
        sources=[
            SourceConfig(id="blog", name="Example Blog", type="blog", locator="https://blog.example.com/feed"),
            SourceConfig(id="jane", name="Jane", type="microblog", locator="@jane"),
            SourceConfig(id="chan", name="Channel", type="video", locator="https://yt.example/feed"),
        ],
        models=MODELS,
        batch_mode=False,
    )
    data.update(overrides)
    return Config(**data)


def rss_adapter():
    return RSSAdapter(transport=httpx.MockTransport(lambda request: httpx.Response(200, text=FEED)))


def make_pipeline(config, adapters, clients, sleep, store=None):
    store = store or ContentStore(MemoryKeyValueStore())
    pipeline = NewsPipeline(config=config, store=store, clients=clients, adapters=adapters, sleep=sleep)
    return pipeline, store


def test_per_item_cycle_stores_ab_summaries(fake_client, recording_sleep):
    clients = {m.id: fake_client() for m in MODELS}
    adapters = {
        "blog": rss_adapter(),
        "microblog": StaticAdapter("microblog"),
        "video": StaticAdapter("video"),
    }
    pipeline, store = make_pipeline(make_config(), adapters, clients, recording_sleep)

    async def run():
        result = await pipeline.run(PipelineRequest(source_ids=["blog"]))
        contents = await store.get_contents()
        await store.record_comparison(contents[0].id, "model-a", "model-b", "model-a")
        stats = await store.get_model_stats(MODELS)
        return result, contents, stats

    result, contents, stats = asyncio.run(run())

    assert result.fetched == 2
    assert result.processed == 2
    assert result.sources_requested == 1
    assert len(contents) == 2
    assert all(len(c.summaries) == 2 for c in contents)
    assert {s.model_id for s in contents[0].summaries} == {"model-a", "model-b"}
    # Only the requested source type was fetched
    assert adapters["microblog"].calls == 0

    by_id = {s.model_id: s for s in stats}
    assert by_id["model-a"].wins == 1
    assert by_id["model-b"].losses == 1
    assert by_id["model-a"].total_summaries == 2


def test_second_cycle_finds_nothing_new(fake_client, recording_sleep):
    clients = {m.id: fake_client() for m in MODELS}
    adapters = {"blog": rss_adapter()}
    config = make_config(sources=[SourceConfig(id="blog", name="Blog", type="blog", locator="https://b/feed")])
    pipeline, store = make_pipeline(config, adapters, clients, recording_sleep)

    async def run():
        first = await pipeline.run()
        second = await pipeline.run()
        return first, second, await store.get_contents()

    first, second, contents = asyncio.run(run())

    assert first.processed == 2
    assert first.sources_requested == "all"
    assert second.fetched == 2
    assert second.new_items == 0
    assert second.processed == 0
    assert len(contents) == 2


def test_batch_cycle_creates_single_digest(make_raw, fake_client, recording_sleep):
    latest = datetime(2025, 1, 20, tzinfo=timezone.utc)
    posts = [make_raw(i, source_id="jane") for i in range(1, 5)]
    posts.append(make_raw(5, source_id="jane", published_at=latest))
    clients = {m.id: fake_client() for m in MODELS}
    adapters = {"microblog": StaticAdapter("microblog", items=posts)}
    config = make_config(batch_mode=True, batch_model_id="model-b")
    pipeline, store = make_pipeline(config, adapters, clients, recording_sleep)

    result = asyncio.run(pipeline.run(PipelineRequest(source_ids=["jane"])))
    contents = asyncio.run(store.get_contents())

    assert result.fetched == 5
    assert result.processed == 1
    assert len(contents) == 1
    digest = contents[0]
    assert len(digest.summaries) == 1
    assert digest.summaries[0].model_id == "model-b"
    assert "5" in digest.title
    assert digest.published_at == latest
    assert len(clients["model-b"].prompts) == 1
    assert clients["model-a"].prompts == []


def test_partial_failure_still_processes(make_raw, fake_client, recording_sleep):
    clients = {m.id: fake_client() for m in MODELS}
    adapters = {
        "blog": StaticAdapter("blog", items=[make_raw(1, source_id="blog")]),
        "microblog": StaticAdapter("microblog", failures={"jane": RateLimitError("slow", attempts=3)}),
        "video": StaticAdapter("video", error=RuntimeError("feed host down")),
    }
    pipeline, _ = make_pipeline(make_config(), adapters, clients, recording_sleep)

    result = asyncio.run(pipeline.run())

    assert result.processed == 1
    assert set(result.failures) == {"jane", "chan"}


def test_all_sources_rate_limited_raises(fake_client, recording_sleep):
    clients = {m.id: fake_client() for m in MODELS}
    adapters = {
        "blog": StaticAdapter("blog", failures={"blog": RuntimeError("HTTP 500")}),
        "microblog": StaticAdapter("microblog", failures={"jane": RateLimitError("slow", attempts=3)}),
        "video": StaticAdapter("video", error=RuntimeError("down")),
    }
    pipeline, _ = make_pipeline(make_config(), adapters, clients, recording_sleep)

    with pytest.raises(PipelineFailure) as exc_info:
        asyncio.run(pipeline.run())

    assert exc_info.value.rate_limited is True
    assert exc_info.value.retryable is True
    assert set(exc_info.value.failures) == {"blog", "jane", "chan"}


def test_all_sources_failed_without_rate_limit(fake_client, recording_sleep):
    clients = {m.id: fake_client() for m in MODELS}
    adapters = {"blog": StaticAdapter("blog", failures={"blog": RuntimeError("HTTP 500")})}
    pipeline, _ = make_pipeline(make_config(), adapters, clients, recording_sleep)

    with pytest.raises(PipelineFailure) as exc_info:
        asyncio.run(pipeline.run(PipelineRequest(source_ids=["blog"])))

    assert exc_info.value.rate_limited is False


def test_empty_fetch_without_failures_is_not_an_error(fake_client, recording_sleep):
    clients = {m.id: fake_client() for m in MODELS}
    adapters = {"blog": StaticAdapter("blog")}
    pipeline, _ = make_pipeline(make_config(), adapters, clients, recording_sleep)

    result = asyncio.run(pipeline.run(PipelineRequest(source_ids=["blog"])))

    assert result.fetched == 0
    assert result.processed == 0
    assert result.message == "No new content found"


def test_unknown_source_ids_are_rejected(fake_client, recording_sleep):
    pipeline, _ = make_pipeline(make_config(), {}, {}, recording_sleep)

    with pytest.raises(InvalidRequestError):
        asyncio.run(pipeline.run(PipelineRequest(source_ids=["nope"])))
    with pytest.raises(InvalidRequestError):
        asyncio.run(pipeline.run(PipelineRequest(source_ids=[])))


def test_known_ids_are_kept_when_mixed_with_unknown(fake_client, recording_sleep):
    pipeline, _ = make_pipeline(make_config(), {}, {}, recording_sleep)

    sources = pipeline.resolve_sources(["jane", "nope"])

    assert [s.id for s in sources] == ["jane"]


def test_demo_mode_refreshes_demo_article(fake_client, recording_sleep):
    clients = {m.id: fake_client() for m in MODELS}
    config = make_config(DEMO_MODE=True)
    store = ContentStore(MemoryKeyValueStore())
    pipeline = NewsPipeline(config=config, store=store, clients=clients, sleep=recording_sleep)

    async def run():
        await pipeline.run(PipelineRequest(source_ids=["blog"]))
        second = await pipeline.run(PipelineRequest(source_ids=["blog"]))
        return second, await store.get_contents()

    second, contents = asyncio.run(run())

    assert second.processed == 1
    assert [c.raw_content_id for c in contents] == ["demo-article"]


def test_batch_cycle_does_not_redigest_stored_posts(make_raw, fake_client, recording_sleep):
    posts = [make_raw(i, source_id="jane") for i in range(1, 6)]
    clients = {m.id: fake_client() for m in MODELS}
    adapters = {"microblog": StaticAdapter("microblog", items=posts)}
    config = make_config(batch_mode=True, batch_model_id="model-b")
    pipeline, store = make_pipeline(config, adapters, clients, recording_sleep)

    async def run():
        first = await pipeline.run(PipelineRequest(source_ids=["jane"]))
        second = await pipeline.run(PipelineRequest(source_ids=["jane"]))
        return first, second, await store.get_contents()

    first, second, contents = asyncio.run(run())

    assert first.processed == 1
    assert second.fetched == 5
    assert second.new_items == 0
    assert second.processed == 0
    assert len(contents) == 1
    assert contents[0].raw_content_ids == [p.id for p in posts]
    assert len(clients["model-b"].prompts) == 1
