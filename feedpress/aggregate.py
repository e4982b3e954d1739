"""Aggregation of raw feed items into the ordered, bounded post list."""

from datetime import UTC, datetime
from urllib.parse import urlparse

from .config import PipelineConfig
from .dedup import Deduplicator, generate_post_id
from .logging_config import create_execution_logger
from .models import Post, RawItem
from .rss import clean_html, parse_published

ELLIPSIS = "…"


class Aggregator:
    """Normalizes, deduplicates, sorts and truncates posts."""

    def __init__(
        self,
        config: PipelineConfig,
        execution_id: str | None = None,
        now: datetime | None = None,
    ):
        """Initialize the aggregator.

        Args:
            config: Resolved pipeline configuration
            execution_id: Execution ID for logging context
            now: Ingestion time used for undated items (defaults to current time)
        """
        self.config = config
        self.now = now or datetime.now(UTC)
        self.logger = create_execution_logger("aggregator", execution_id)
        self.deduplicator = Deduplicator(config.dedup_policy, execution_id)

    def aggregate(
        self, raw_items: list[RawItem], existing: list[Post] | None = None
    ) -> list[Post]:
        """Build the final post list.

        Args:
            raw_items: Items extracted during this run, in feed order
            existing: Previously persisted posts (used in merge mode only)

        Returns:
            Posts ordered by published_at descending, at most max_items long
        """
        fresh = []
        for item in raw_items:
            try:
                fresh.append(self.to_post(item))
            except Exception as e:
                self.logger.warning(
                    f"Failed to normalize item {item.link}: {e}",
                    post_url=item.link,
                    error=str(e),
                )

        posts = self.deduplicator.deduplicate(fresh)

        if self.config.merge_mode == "merge" and existing:
            posts = self.deduplicator.merge(posts, existing)

        # sorted() is stable, so ties keep insertion order
        posts = sorted(posts, key=lambda post: post.published_at, reverse=True)
        retained = posts[: self.config.max_items]

        self.logger.info(
            "Aggregated posts",
            raw_items=len(raw_items),
            duplicates_dropped=self.deduplicator.duplicates_dropped,
            candidates=len(posts),
            retained=len(retained),
            max_items=self.config.max_items,
            merge_mode=self.config.merge_mode,
            dedup_policy=self.config.dedup_policy,
        )
        return retained

    def to_post(self, item: RawItem) -> Post:
        """Normalize a RawItem into a Post."""
        url = item.link.strip()
        post_id = generate_post_id(url)
        summary = self.truncate_summary(clean_html(item.description_html))
        source_name = self.source_name(item)

        category = self.classify(
            [item.title, summary or "", source_name, url],
            fallback=item.source.category if item.source else None,
        )

        return Post(
            id=post_id,
            title=" ".join(item.title.split()),
            url=url,
            source_name=source_name,
            published_at=parse_published(item.published_raw, self.now),
            category=category,
            page_path=f"posts/{post_id}.html",
            image=item.enclosure_candidates[0] if item.enclosure_candidates else None,
            summary=summary,
        )

    def truncate_summary(self, text: str) -> str | None:
        """Cap plain-text summary length, appending an ellipsis when cut."""
        if not text:
            return None
        limit = self.config.summary_length
        if len(text) <= limit:
            return text
        return text[:limit].rstrip() + ELLIPSIS

    def classify(self, parts: list[str], fallback: str | None = None) -> str:
        """Assign a category by case-insensitive keyword matching.

        The first keyword set with a match wins; otherwise the feed's own
        category, otherwise the default category.
        """
        haystack = " ".join(part for part in parts if part).lower()
        for name, keywords in self.config.categories:
            if any(keyword and keyword.lower() in haystack for keyword in keywords):
                return name
        return fallback or self.config.default_category

    @staticmethod
    def source_name(item: RawItem) -> str:
        """Pick a human-readable origin: feed title, configured name or hostname."""
        if item.feed_title:
            return item.feed_title
        if item.source and item.source.name:
            return item.source.name
        host = urlparse(item.link).netloc.lower()
        if host.startswith("www."):
            host = host[4:]
        return host or "RSS"
