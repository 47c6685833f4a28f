"""Command-line interface for rag-search."""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

import structlog

from rag_search.config import get_settings
from rag_search.errors import RagSearchError
from rag_search.models.search import SearchMode, SearchRequest
from rag_search.observability import get_metrics
from rag_search.service import SearchService, build_service

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(logging.INFO),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()


async def _with_service(command):
    async with build_service(get_settings()) as service:
        return await command(service)


def cmd_status(args):
    """Print the state of the served snapshot."""

    async def run(service: SearchService):
        return service.status()

    status = asyncio.run(_with_service(run))
    print(f"\n Generation: {status.generation} | Refresh: {status.refresh_state}")
    print(f" Documents: {status.document_count} | Embeddings: {status.embedding_count}")
    print(f" Dimension: {status.dimension or '-'}")
    if status.last_refresh_at:
        print(f" Last refresh: {status.last_refresh_at.isoformat()}")
    if status.last_refresh_error:
        print(f" Last error: {status.last_refresh_error}")
    print()


def cmd_search(args):
    """Search from the command line."""
    request = SearchRequest(
        query=args.query,
        mode=SearchMode(args.mode),
        max_results=args.max_results,
        content_categories=args.category or None,
    )

    async def run(service: SearchService):
        return await service.search(request)

    response = asyncio.run(_with_service(run))

    print(f"\n Query: {args.query}")
    mode_line = f" Mode: {response.mode_used.value}"
    if response.degraded:
        mode_line += f" (degraded from {request.mode.value})"
    print(f"{mode_line} | Latency: {response.execution_time_ms:.1f}ms | Generation: {response.generation}")
    print(f" Showing {len(response.results)} of {response.total_results}\n")

    for i, result in enumerate(response.results, 1):
        print(f"{i}. {result.title or result.document_id}")
        print(f"    {result.content_category} | {result.file_kind} | {result.source_locator}")
        print(f"    Score: {result.score:.4f}")
        print(f"     Keyword: {result.keyword_score:.4f} | Vector: {result.vector_score:.4f}")
        # Clean snippet of HTML tags for terminal
        snippet = result.snippet.replace("<mark>", "\033[1;33m").replace("</mark>", "\033[0m")
        print(f"   {snippet[:200]}")
        print()


def cmd_upsert(args):
    """Index documents from a JSON file (a list of document objects)."""
    path = Path(args.file)
    if not path.exists():
        logger.error("file_not_found", path=str(path))
        sys.exit(1)

    payload = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(payload, dict):
        payload = [payload]

    async def run(service: SearchService):
        return await service.upsert(payload)

    result = asyncio.run(_with_service(run))
    logger.info("upsert_finished", accepted=result.accepted, generation=result.generation)
    for error in result.errors:
        print(f" rejected {error.id or '<no id>'}: {error.reason}")


def cmd_delete(args):
    """Delete documents by id."""

    async def run(service: SearchService):
        return await service.delete(args.ids)

    removed = asyncio.run(_with_service(run))
    logger.info("delete_finished", requested=len(args.ids), removed=removed)


def cmd_refresh(args):
    """Reload the store into a new snapshot."""

    async def run(service: SearchService):
        return await service.force_refresh()

    generation = asyncio.run(_with_service(run))
    logger.info("refresh_finished", generation=generation)


def cmd_rebuild(args):
    """Recompute every embedding."""

    async def run(service: SearchService):
        return await service.rebuild()

    generation = asyncio.run(_with_service(run))
    logger.info("rebuild_finished", generation=generation)


def main():
    """Main CLI entrypoint."""
    parser = argparse.ArgumentParser(
        prog="rag-search",
        description="Hybrid keyword and vector search over an embedding index",
    )
    parser.add_argument(
        "--metrics", action="store_true", help="Print Prometheus metrics after the command"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # status command
    status_parser = subparsers.add_parser("status", help="Show index status")
    status_parser.set_defaults(func=cmd_status)

    # search command
    search_parser = subparsers.add_parser("search", help="Search the index")
    search_parser.add_argument("query", help="Search query")
    search_parser.add_argument(
        "--mode", "-m",
        choices=[m.value for m in SearchMode],
        default=SearchMode.HYBRID.value,
        help="Retrieval mode",
    )
    search_parser.add_argument("--max-results", "-k", type=int, help="Number of results")
    search_parser.add_argument(
        "--category", "-c", action="append", help="Restrict to a content category (repeatable)"
    )
    search_parser.set_defaults(func=cmd_search)

    # upsert command
    upsert_parser = subparsers.add_parser("upsert", help="Index documents from a JSON file")
    upsert_parser.add_argument("file", help="Path to a JSON list of documents")
    upsert_parser.set_defaults(func=cmd_upsert)

    # delete command
    delete_parser = subparsers.add_parser("delete", help="Delete documents by id")
    delete_parser.add_argument("ids", nargs="+", help="Document ids")
    delete_parser.set_defaults(func=cmd_delete)

    # refresh command
    refresh_parser = subparsers.add_parser("refresh", help="Force a snapshot reload")
    refresh_parser.set_defaults(func=cmd_refresh)

    # rebuild command
    rebuild_parser = subparsers.add_parser("rebuild", help="Recompute all embeddings")
    rebuild_parser.set_defaults(func=cmd_rebuild)

    args = parser.parse_args()
    try:
        args.func(args)
    except RagSearchError as e:
        logger.error("command_failed", command=args.command, error=str(e))
        sys.exit(1)

    if args.metrics:
        data, _ = get_metrics()
        print(data.decode("utf-8"))


if __name__ == "__main__":
    main()
