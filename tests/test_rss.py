"""Tests for the blog feed adapter."""
import asyncio

import httpx

from core.entities import Source
from ingestion.base import content_id
from ingestion.rss import RSSAdapter

FEED = """<?xml version="1.0"?>
<rss version="2.0"><channel><title>Blog</title>
  <item>
    <title>First &amp; best</title>
    <link>https://blog.example.com/first</link>
    <pubDate>Tue, 14 Jan 2025 10:30:00 GMT</pubDate>
    <description>{body}</description>
  </item>
  <item>
    <title>Title only</title>
    <link>https://blog.example.com/title-only</link>
  </item>
</channel></rss>"""

GOOD = Source(id="good", name="Good Blog", type="blog", locator="https://blog.example.com/feed.xml")
BROKEN = Source(id="broken", name="Broken Blog", type="blog", locator="https://broken.example.com/feed.xml")


def handler_for(body="Plenty of body text."):
    def handler(request):
        if request.url.host == "broken.example.com":
            return httpx.Response(500, text="oops")
        return httpx.Response(200, text=FEED.format(body=body))
    return handler


def test_fetches_and_normalizes_items():
    adapter = RSSAdapter(transport=httpx.MockTransport(handler_for()))

    report = asyncio.run(adapter.fetch_items([GOOD]))

    assert report.attempted == ["good"]
    assert report.failures == {}
    assert len(report.items) == 2

    first = report.items[0]
    assert first.id == content_id("blog", "good", key="https://blog.example.com/first")
    assert first.title == "First & best"
    assert first.source_id == "good"
    assert first.content == "Plenty of body text."


def test_item_without_body_falls_back_to_title():
    adapter = RSSAdapter(transport=httpx.MockTransport(handler_for()))

    report = asyncio.run(adapter.fetch_items([GOOD]))

    assert report.items[1].content == "Article: Title only"


def test_content_is_truncated():
    adapter = RSSAdapter(max_content_length=10, transport=httpx.MockTransport(handler_for("x" * 50)))

    report = asyncio.run(adapter.fetch_items([GOOD]))

    assert report.items[0].content == "x" * 10 + "..."


def test_failing_source_does_not_affect_others():
    adapter = RSSAdapter(transport=httpx.MockTransport(handler_for()))

    report = asyncio.run(adapter.fetch_items([GOOD, BROKEN]))

    assert report.attempted == ["good", "broken"]
    assert set(report.failures) == {"broken"}
    assert {i.source_id for i in report.items} == {"good"}
    assert report.all_failed is False


def test_ids_are_stable_across_fetches():
    adapter = RSSAdapter(transport=httpx.MockTransport(handler_for()))

    first = asyncio.run(adapter.fetch_items([GOOD]))
    second = asyncio.run(adapter.fetch_items([GOOD]))

    assert [i.id for i in first.items] == [i.id for i in second.items]
