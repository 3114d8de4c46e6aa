"""
Non-networked demo sources.

The demo article always carries ``DEMO_CONTENT_ID`` so that re-running a
demo cycle replaces the stored entry instead of being deduplicated away.
"""
import logging
from datetime import datetime, timezone
from typing import Dict, Optional, Sequence

from core.entities import Source
from ingestion.base import FetchReport, RawContent, SourceAdapter, content_id
from services.config import DemoPost

logger = logging.getLogger(__name__)

DEMO_CONTENT_ID = "demo-article"

DEMO_ARTICLE_TITLE = "Demo: Small language models close the gap on reasoning benchmarks"
DEMO_ARTICLE_BODY = (
    "A new round of open model releases shows compact language models matching much larger "
    "systems on several reasoning benchmarks. The teams behind the releases credit better "
    "training data curation and longer post-training with reinforcement learning. Independent "
    "evaluators caution that benchmark contamination remains hard to rule out, and that "
    "real-world agentic tasks still favour larger models. The releases include permissive "
    "licences, quantized weights for laptops, and detailed technical reports."
)


def demo_article(source_id: str) -> RawContent:
    return RawContent(
        id=DEMO_CONTENT_ID,
        source_id=source_id,
        title=DEMO_ARTICLE_TITLE,
        url="https://example.com/demo-article",
        published_at=datetime.now(timezone.utc),
        content=DEMO_ARTICLE_BODY,
        author="Demo Desk",
    )


class DemoAdapter(SourceAdapter):
    """
    Serves the demo article for blog sources and configured demo posts
    for microblog sources. Video sources yield nothing.
    """

    def __init__(self, source_type: str, demo_posts: Optional[Dict[str, DemoPost]] = None):
        self.source_type = source_type
        self.demo_posts = demo_posts or {}

    async def fetch_items(self, sources: Sequence[Source]) -> FetchReport:
        report = FetchReport(source_type=self.source_type)
        if not sources:
            return report

        report.attempted.extend(s.id for s in sources)

        if self.source_type == "blog":
            report.items.append(demo_article(sources[0].id))

        elif self.source_type == "microblog":
            for source in sources:
                post = self.demo_posts.get(source.id)
                if not post:
                    continue
                report.items.append(
                    RawContent(
                        id=content_id("microblog", source.id, "demo", key=post.text[:50]),
                        source_id=source.id,
                        title=post.text[:200],
                        url=post.url,
                        published_at=post.date,
                        content=post.text,
                        author=post.author,
                    )
                )

        logger.info(f"[DEMO MODE] Returning {len(report.items)} {self.source_type} item(s)")
        return report
