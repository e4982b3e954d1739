"""Unit tests for the Aggregator."""

from datetime import UTC, datetime

from feedpress.aggregate import ELLIPSIS, Aggregator
from feedpress.config import PipelineConfig
from feedpress.dedup import generate_post_id
from feedpress.models import FeedSource, Post, RawItem

NOW = datetime(2024, 2, 1, 9, 30, tzinfo=UTC)


def raw(title, link, published="2024-01-01T00:00:00Z", description="", **kwargs) -> RawItem:
    return RawItem(
        title=title,
        link=link,
        published_raw=published,
        description_html=description,
        **kwargs,
    )


class TestAggregatorUnit:
    """Unit tests for specific aggregation scenarios."""

    def test_duplicates_collapse_and_newest_first(self):
        """Two URLs, one repeated, bounded to two posts: newest first."""
        config = PipelineConfig(max_items=2)
        items = [
            raw("X", "u1", "2024-01-02"),
            raw("Y", "u2", "2024-01-03"),
            raw("Y", "u2", "2024-01-03"),
        ]

        posts = Aggregator(config, now=NOW).aggregate(items)

        assert [post.title for post in posts] == ["Y", "X"]
        assert [post.url for post in posts] == ["u2", "u1"]
        assert posts[0].published_at == datetime(2024, 1, 3, tzinfo=UTC)

    def test_bounded_to_max_items(self):
        config = PipelineConfig(max_items=3)
        items = [raw(f"T{i}", f"https://x.example.com/{i}", f"2024-01-{i + 1:02d}") for i in range(10)]

        posts = Aggregator(config, now=NOW).aggregate(items)

        assert [post.title for post in posts] == ["T9", "T8", "T7"]

    def test_ties_keep_extraction_order(self):
        config = PipelineConfig()
        items = [raw(f"T{i}", f"https://x.example.com/{i}", "2024-01-01T00:00:00Z") for i in range(4)]

        posts = Aggregator(config, now=NOW).aggregate(items)

        assert [post.title for post in posts] == ["T0", "T1", "T2", "T3"]

    def test_undated_item_uses_ingestion_time(self):
        posts = Aggregator(PipelineConfig(), now=NOW).aggregate(
            [raw("Undated", "https://x.example.com/u", None), raw("Bad date", "https://x.example.com/b", "soon")]
        )

        assert all(post.published_at == NOW for post in posts)

    def test_post_fields(self):
        source = FeedSource(url="https://news.example.com/rss", name="Example")
        item = raw(
            "  Budget   approved ",
            " https://news.example.com/budget ",
            "Mon, 01 Jan 2024 10:00:00 GMT",
            "<p>The <b>budget</b> passed.</p>",
            enclosure_candidates=["https://img.example.com/a.jpg", "https://img.example.com/b.jpg"],
            feed_title="Example News",
            source=source,
        )

        post = Aggregator(PipelineConfig(), now=NOW).to_post(item)

        assert post.url == "https://news.example.com/budget"
        assert post.id == generate_post_id("https://news.example.com/budget")
        assert post.title == "Budget approved"
        assert post.summary == "The budget passed."
        assert post.image == "https://img.example.com/a.jpg"
        assert post.source_name == "Example News"
        assert post.page_path == f"posts/{post.id}.html"
        assert post.published_at == datetime(2024, 1, 1, 10, 0, tzinfo=UTC)

    def test_summary_truncated_with_ellipsis(self):
        config = PipelineConfig(summary_length=20)
        item = raw("T", "https://x.example.com/t", description="word " * 50)

        post = Aggregator(config, now=NOW).to_post(item)

        assert post.summary.endswith(ELLIPSIS)
        assert len(post.summary) <= 21

    def test_short_and_empty_summary(self):
        aggregator = Aggregator(PipelineConfig(summary_length=200), now=NOW)

        assert aggregator.truncate_summary("short text") == "short text"
        assert aggregator.truncate_summary("") is None
        assert aggregator.to_post(raw("T", "https://x.example.com/t", description="<p></p>")).summary is None

    def test_source_name_fallbacks(self):
        configured = FeedSource(url="https://feeds.example.com/rss", name="Configured")

        assert Aggregator.source_name(raw("T", "https://a.example.com/1", feed_title="Feed")) == "Feed"
        assert Aggregator.source_name(raw("T", "https://a.example.com/1", source=configured)) == "Configured"
        assert Aggregator.source_name(raw("T", "https://www.host.example.com/1")) == "host.example.com"
        assert Aggregator.source_name(raw("T", "u1")) == "RSS"


class TestClassification:
    """Keyword category classification."""

    def setup_method(self):
        self.aggregator = Aggregator(PipelineConfig(), now=NOW)

    def test_keyword_match_case_insensitive(self):
        assert self.aggregator.classify(["Parliament votes on budget"]) == "politics"
        assert self.aggregator.classify(["New SMARTPHONE unveiled"]) == "technology"
        assert self.aggregator.classify(["Championship final tonight"]) == "sports"

    def test_first_matching_set_wins(self):
        # "arrest" (scandal) and "minister" (politics) both match
        assert self.aggregator.classify(["Former minister under arrest"]) == "scandal"

    def test_fallback_to_feed_category_then_default(self):
        assert self.aggregator.classify(["Weather is mild"], fallback="world") == "world"
        assert self.aggregator.classify(["Weather is mild"]) == "general"

    def test_custom_table_and_default(self):
        config = PipelineConfig(
            categories=[("space", ["rocket", "orbit"]), ("empty", [""])],
            default_category="misc",
        )
        aggregator = Aggregator(config, now=NOW)

        assert aggregator.classify(["Rocket launch delayed"]) == "space"
        assert aggregator.classify(["Nothing relevant"]) == "misc"

    def test_summary_and_url_contribute(self):
        item = raw(
            "Quarterly results",
            "https://news.example.com/earnings-report",
            description="Analysts expected more.",
        )

        assert self.aggregator.to_post(item).category == "business"


class TestMergeModes:
    """Replace versus merge handling of persisted posts."""

    def existing_post(self, url: str, day: int) -> Post:
        post_id = generate_post_id(url)
        return Post(
            id=post_id,
            title=f"Old {day}",
            url=url,
            source_name="Old",
            published_at=datetime(2024, 1, day, tzinfo=UTC),
            category="general",
            page_path=f"posts/{post_id}.html",
        )

    def test_replace_ignores_existing(self):
        existing = [self.existing_post("https://old.example.com/1", 20)]
        items = [raw("New", "https://new.example.com/1", "2024-01-05")]

        posts = Aggregator(PipelineConfig(merge_mode="replace"), now=NOW).aggregate(items, existing)

        assert [post.title for post in posts] == ["New"]

    def test_merge_unions_and_sorts(self):
        existing = [
            self.existing_post("https://old.example.com/1", 20),
            self.existing_post("https://new.example.com/1", 1),
        ]
        items = [raw("New", "https://new.example.com/1", "2024-01-05")]

        posts = Aggregator(PipelineConfig(merge_mode="merge"), now=NOW).aggregate(items, existing)

        assert [post.title for post in posts] == ["Old 20", "New"]

    def test_merge_is_bounded(self):
        existing = [self.existing_post(f"https://old.example.com/{d}", d) for d in range(1, 11)]
        items = [raw("New", "https://new.example.com/1", "2024-01-30")]

        posts = Aggregator(PipelineConfig(merge_mode="merge", max_items=5), now=NOW).aggregate(items, existing)

        assert [post.title for post in posts] == ["New", "Old 10", "Old 9", "Old 8", "Old 7"]
