import logging
from typing import Iterable, List

from core.entities import ProcessedContent
from ingestion.base import RawContent
from ingestion.demo import DEMO_CONTENT_ID

logger = logging.getLogger(__name__)


def filter_new_content(
    items: Iterable[RawContent],
    existing: Iterable[ProcessedContent],
) -> List[RawContent]:
    """
    Keep items whose id is not already stored, either as an entry or
    inside a stored digest, and drop repeats within the batch. The demo
    article is always kept so it can be refreshed.
    """
    stored_ids = set()
    for content in existing:
        stored_ids.add(content.raw_content_id)
        stored_ids.update(content.raw_content_ids)
    seen = set()
    unique: List[RawContent] = []

    for item in items:
        if item.id in seen:
            logger.debug(f"Skipping batch duplicate: {item.title}")
            continue
        seen.add(item.id)

        if item.id in stored_ids and item.id != DEMO_CONTENT_ID:
            continue
        unique.append(item)

    logger.info(f"Dedup filter: {len(seen)} -> {len(unique)} items")
    return unique


def _carries_demo(content: ProcessedContent) -> bool:
    return content.raw_content_id == DEMO_CONTENT_ID or DEMO_CONTENT_ID in content.raw_content_ids


def merge_contents(
    new_contents: Iterable[ProcessedContent],
    existing: List[ProcessedContent],
    limit: int = 100,
) -> List[ProcessedContent]:
    """
    Prepend new entries (most recent first) and keep at most ``limit``.
    Entries already stored are skipped, except the demo article (or a
    digest containing it) which replaces its stored copy.
    """
    new_contents = list(new_contents)
    if any(_carries_demo(c) for c in new_contents):
        kept = [c for c in existing if not _carries_demo(c)]
    else:
        kept = list(existing)

    existing_ids = {c.raw_content_id for c in kept}
    unique_new = []
    for content in new_contents:
        if content.raw_content_id in existing_ids:
            continue
        existing_ids.add(content.raw_content_id)
        unique_new.append(content)

    return (unique_new + kept)[:limit]
