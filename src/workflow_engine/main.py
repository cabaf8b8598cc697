"""CLI entrypoint for cache housekeeping.

Workflows themselves are submitted programmatically; the CLI covers the one
piece of persistent state the engine owns: the on-disk cache directory.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from workflow_engine import __version__
from workflow_engine.cache.cache import Cache
from workflow_engine.core.config import CacheConfig, EngineConfig

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="workflow-engine",
        description="Workflow engine cache housekeeping",
    )
    parser.add_argument("--version", action="version", version=f"workflow-engine {__version__}")
    parser.add_argument(
        "--cache-dir",
        type=Path,
        default=None,
        help="Persistent cache directory (defaults to WORKFLOW_ENGINE_CACHE_DIRECTORY or .cache)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("cache-stats", help="Print persistent cache usage as JSON")

    clear = subparsers.add_parser("cache-clear", help="Delete cached entries")
    clear.add_argument(
        "--tag",
        dest="tags",
        action="append",
        default=None,
        help="Only delete entries carrying this tag (repeatable)",
    )

    subparsers.add_parser(
        "cache-cleanup",
        help="Remove expired entries and trim the cache directory to its size budget",
    )

    return parser


def _build_cache(config: CacheConfig, cache_dir: Path | None) -> Cache:
    if cache_dir is not None:
        config = config.model_copy(update={"directory": cache_dir})
    return Cache(config)


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = EngineConfig()
    except ValidationError as e:
        # Logging isn't configured yet; keep it simple and actionable.
        print("Configuration error (check your .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return 2

    config.setup_logging()

    try:
        cache = _build_cache(config.cache, args.cache_dir)

        if args.command == "cache-stats":
            usage = cache.persistent_usage()
            payload: dict[str, object] = {
                "directory": str(cache.config.directory),
                "persistent_enabled": cache.persistent_enabled,
                "tags": cache.metrics().tag_count,
            }
            if usage is not None:
                payload.update(usage)
            print(json.dumps(payload, indent=2))
            return 0

        if args.command == "cache-clear":
            if args.tags:
                removed = cache.clear_by_tags(args.tags)
                print(f"Removed {removed} entries tagged {', '.join(args.tags)}")
            else:
                cache.clear()
                print(f"Cleared cache at {cache.config.directory}")
            return 0

        if args.command == "cache-cleanup":
            outcome = cache.optimize()
            print(json.dumps(outcome, indent=2))
            return 0

        logger.error("Unknown command", extra={"command": args.command})
        return 2

    except Exception:
        logger.exception("Command failed")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
