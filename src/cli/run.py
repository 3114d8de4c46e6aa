import argparse
import asyncio
import json
import logging
import sys
import time
from typing import List, Optional

from core.errors import NewsPipelineError, PipelineFailure
from services.config import Config, load_config
from services.content_store import ContentStore
from services.database import Database
from services.llm import build_clients
from services.logging import setup_logging
from workflows.base import PipelineRequest
from workflows.news_pipeline import NewsPipeline

logger = logging.getLogger(__name__)


def _print(payload) -> None:
    print(json.dumps(payload, indent=2, default=str))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ai-news", description="AI news A/B summarization pipeline")
    parser.add_argument("--config", help="Path to config.yml")
    sub = parser.add_subparsers(dest="command", required=True)

    fetch = sub.add_parser("fetch", help="Fetch, summarize and store new content")
    fetch.add_argument("--sources", nargs="+", metavar="ID", help="Only fetch these source ids")
    fetch.add_argument("--per-item", action="store_true", help="A/B summarize each item instead of one digest")

    news = sub.add_parser("news", help="Show stored content and model stats")
    news.add_argument("--category")
    news.add_argument("--source")
    news.add_argument("--type", choices=["blog", "video", "microblog"])

    sub.add_parser("stats", help="Show per-model statistics")

    rate = sub.add_parser("rate", help="Rate a summary 1-5")
    rate.add_argument("content_id")
    rate.add_argument("summary_id")
    rate.add_argument("score", type=int)

    compare = sub.add_parser("compare", help="Record an A/B vote")
    compare.add_argument("content_id")
    compare.add_argument("model_a")
    compare.add_argument("model_b")
    compare.add_argument("winner", help="model_a id, model_b id or 'tie'")

    return parser


async def run_fetch(config: Config, store: ContentStore, sources: Optional[List[str]], per_item: bool) -> int:
    start_time = time.perf_counter()
    pipeline = NewsPipeline(config=config, store=store, clients=build_clients(config))
    request = PipelineRequest(source_ids=sources, batch_mode=False if per_item else None)

    try:
        result = await pipeline.run(request)
    except PipelineFailure as e:
        _print({
            "success": False,
            "error": e.message,
            "rate_limited": e.rate_limited,
            "suggestion": e.suggestion,
            "failures": e.failures,
        })
        return 1

    _print({"success": True, **result.model_dump(mode="json")})
    logger.info(f"Total time: {time.perf_counter() - start_time:.1f}s")
    return 0


async def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging()

    config = load_config(args.config)
    store = ContentStore(
        Database(config.STORAGE_PATH),
        max_contents=config.retention.max_contents,
        max_comparisons=config.retention.max_comparisons,
    )

    try:
        if args.command == "fetch":
            return await run_fetch(config, store, args.sources, args.per_item)

        if args.command == "news":
            news = await store.get_news(
                config.get_all_models(),
                category=args.category,
                source_id=args.source,
                source_type=args.type,
            )
            _print(news.model_dump(mode="json"))

        elif args.command == "stats":
            stats = await store.get_model_stats(config.get_all_models())
            _print([s.model_dump(mode="json") for s in stats])

        elif args.command == "rate":
            found = await store.update_rating(args.content_id, args.summary_id, args.score)
            _print({"success": found, "type": "rating"})
            return 0 if found else 1

        elif args.command == "compare":
            comparison = await store.record_comparison(
                args.content_id, args.model_a, args.model_b, args.winner
            )
            _print({"success": True, "type": "comparison", "id": comparison.id})

    except NewsPipelineError as e:
        _print({"success": False, "error": e.message, "suggestion": e.suggestion})
        return 1

    return 0


def cli() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
