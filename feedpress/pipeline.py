"""Batch entry point: fetch feeds, aggregate posts, render pages and manifest."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Optional

import typer

from .aggregate import Aggregator
from .config import BedrockConfig, Config, PipelineConfig
from .exceptions import ConfigurationError
from .logging_config import create_execution_logger, setup_structured_logging
from .models import FeedSource, Post
from .reactions import ReactionSynthesizer, write_threads
from .render import PageRenderer, load_manifest
from .rss import FeedProcessor

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1
EXIT_ALL_FEEDS_FAILED = 2
EXIT_RUNTIME_ERROR = 3


@dataclass
class RunResult:
    """Outcome of one pipeline run."""

    exit_code: int
    posts: list[Post] = field(default_factory=list)
    metrics: dict[str, Any] = field(default_factory=dict)


def run_pipeline(
    config: PipelineConfig,
    sources: list[FeedSource],
    bedrock_config: BedrockConfig | None = None,
    execution_id: str | None = None,
    processor: FeedProcessor | None = None,
    now: datetime | None = None,
) -> RunResult:
    """Run fetch → extract → aggregate → render once.

    Args:
        config: Resolved pipeline configuration
        sources: Enabled feed sources
        bedrock_config: Reaction synthesis settings; skipped unless enabled
        execution_id: Execution ID for logging context
        processor: Feed processor to use (a new one is built by default)
        now: Run timestamp, used for undated items and updatedAt

    Returns:
        RunResult with the retained posts, metrics and the process exit code
    """
    execution_id = execution_id or f"run_{datetime.now(UTC).strftime('%Y%m%d_%H%M%S_%f')}"
    now = now or datetime.now(UTC)
    main_logger = create_execution_logger("main", execution_id)
    main_logger.log_execution_start(
        feed_count=len(sources),
        merge_mode=config.merge_mode,
        dedup_policy=config.dedup_policy,
        max_items=config.max_items,
    )

    metrics = {
        "feeds_total": len(sources),
        "feeds_ok": 0,
        "feeds_failed": 0,
        "items_found": 0,
        "posts_deduplicated": 0,
        "posts_written": 0,
        "pages_pruned": 0,
        "threads_written": 0,
        "errors": [],
    }

    processor = processor or FeedProcessor(
        timeout=config.fetch_timeout,
        max_workers=config.max_workers,
        user_agent=config.user_agent,
        execution_id=execution_id,
    )
    report = processor.fetch_feeds(sources)
    metrics["feeds_ok"] = report.feeds_ok
    metrics["feeds_failed"] = report.feeds_failed
    metrics["items_found"] = len(report.items)
    metrics["errors"].extend(report.errors)

    existing: list[Post] = []
    if config.merge_mode == "merge":
        existing = load_manifest(config.manifest_path, main_logger, now)
        main_logger.info(
            f"Loaded {len(existing)} posts from existing manifest",
            manifest_path=str(config.manifest_path),
        )

    aggregator = Aggregator(config, execution_id=execution_id, now=now)
    posts = aggregator.aggregate(report.items, existing)
    metrics["posts_deduplicated"] = aggregator.deduplicator.duplicates_dropped

    renderer = PageRenderer(config, execution_id=execution_id)
    metrics["posts_written"] = renderer.write_pages(posts)
    renderer.write_manifest(posts, now)

    if config.prune_pages:
        metrics["pages_pruned"] = renderer.prune_pages(posts)

    if bedrock_config and bedrock_config.enabled:
        metrics["threads_written"] = run_reactions(
            bedrock_config, posts, config.threads_path, execution_id, now
        )

    exit_code = EXIT_OK
    if sources and report.feeds_ok == 0:
        main_logger.error(
            "Every configured feed failed; manifest written without fresh posts",
            feeds_failed=report.feeds_failed,
        )
        exit_code = EXIT_ALL_FEEDS_FAILED

    main_logger.log_metrics(metrics)
    main_logger.log_execution_end(success=exit_code == EXIT_OK, posts_count=len(posts))
    return RunResult(exit_code=exit_code, posts=posts, metrics=metrics)


def run_reactions(
    bedrock_config: BedrockConfig,
    posts: list[Post],
    threads_path: Path,
    execution_id: str | None = None,
    now: datetime | None = None,
) -> int:
    """Write threads.json for the top posts, returning the thread count."""
    logger = create_execution_logger("reactions", execution_id)
    synthesizer = ReactionSynthesizer(bedrock_config, execution_id=execution_id)
    document = synthesizer.build_threads(posts, now)
    try:
        write_threads(threads_path, document)
    except OSError as e:
        logger.error(f"Failed to write {threads_path}: {e}", error=str(e))
        return 0

    logger.info(
        "Reaction threads written",
        threads_path=str(threads_path),
        threads_count=len(document["threads"]),
    )
    return len(document["threads"])


def run_threads_only(
    config: PipelineConfig,
    bedrock_config: BedrockConfig,
    execution_id: str | None = None,
    now: datetime | None = None,
) -> RunResult:
    """Write threads.json from the existing posts.json without fetching feeds.

    A missing or empty manifest produces a threads document with no threads.
    """
    execution_id = execution_id or f"run_{datetime.now(UTC).strftime('%Y%m%d_%H%M%S_%f')}"
    now = now or datetime.now(UTC)
    main_logger = create_execution_logger("main", execution_id)
    main_logger.log_execution_start(mode="threads_only", manifest_path=str(config.manifest_path))

    posts = load_manifest(config.manifest_path, main_logger, now)
    if not posts:
        main_logger.warning(
            "Manifest has no posts; writing an empty threads document",
            manifest_path=str(config.manifest_path),
        )

    metrics = {
        "posts_loaded": len(posts),
        "threads_written": run_reactions(
            bedrock_config, posts, config.threads_path, execution_id, now
        ),
    }

    main_logger.log_metrics(metrics)
    main_logger.log_execution_end(success=True, posts_count=len(posts))
    return RunResult(exit_code=EXIT_OK, posts=posts, metrics=metrics)


def main(
    config: Optional[Path] = typer.Option(None, "--config", "-c", help="Feed source configuration file"),
    output_dir: Optional[Path] = typer.Option(None, "--output-dir", "-o", help="Where posts.json and posts/ are written"),
    merge: Optional[bool] = typer.Option(None, "--merge/--replace", help="Merge with the existing manifest or replace it"),
    dedup_policy: Optional[str] = typer.Option(None, "--dedup-policy", help="Duplicate precedence: first or latest"),
    threads: bool = typer.Option(False, "--threads/--no-threads", help="Also synthesize threads.json via Bedrock"),
    threads_only: bool = typer.Option(False, "--threads-only", help="Only rebuild threads.json from the existing posts.json"),
    prune: bool = typer.Option(False, "--prune", help="Delete pages of posts that left the manifest"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING or ERROR"),
) -> None:
    """Build posts.json and per-post pages from the configured feeds."""
    settings = Config(config)
    setup_structured_logging(log_level or settings.log_level)
    main_logger = create_execution_logger("main")

    if threads_only:
        # The feeds file is not needed when no feed is fetched
        try:
            result = run_threads_only(
                PipelineConfig(output_dir=output_dir or settings.output_dir),
                settings.get_bedrock_config(enabled=True),
                execution_id=main_logger.execution_id,
            )
        except Exception as e:
            main_logger.error(f"Critical error while building threads: {e}", error=str(e))
            raise typer.Exit(code=EXIT_RUNTIME_ERROR)
        raise typer.Exit(code=result.exit_code)

    try:
        sources = settings.get_feed_sources()
        pipeline_config = settings.get_pipeline_config(
            output_dir=output_dir,
            merge_mode=None if merge is None else ("merge" if merge else "replace"),
            dedup_policy=dedup_policy,
            prune_pages=prune or None,
        )
        bedrock_config = settings.get_bedrock_config(enabled=threads)
    except ConfigurationError as e:
        main_logger.error(f"Configuration error: {e}", error=str(e))
        raise typer.Exit(code=EXIT_CONFIG_ERROR)

    try:
        result = run_pipeline(
            pipeline_config,
            sources,
            bedrock_config=bedrock_config,
            execution_id=main_logger.execution_id,
        )
    except Exception as e:
        main_logger.error(f"Critical error in pipeline: {e}", error=str(e))
        raise typer.Exit(code=EXIT_RUNTIME_ERROR)

    raise typer.Exit(code=result.exit_code)


def app() -> None:
    """CLI entry point."""
    typer.run(main)


if __name__ == "__main__":
    app()
