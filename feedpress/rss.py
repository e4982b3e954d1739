"""RSS/Atom feed fetching and item extraction for feedpress."""

from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import UTC, datetime
from urllib.parse import urljoin, urlparse

import feedparser
import requests
from bs4 import BeautifulSoup
from dateutil import parser as date_parser

from .exceptions import FetchError, ParseError
from .logging_config import create_execution_logger
from .models import FeedSource, RawItem


@dataclass
class FetchReport:
    """Outcome of fetching every configured feed."""

    items: list[RawItem] = field(default_factory=list)
    feeds_ok: int = 0
    feeds_failed: int = 0
    errors: list[str] = field(default_factory=list)


class FeedProcessor:
    """Handles RSS/Atom feed download, parsing and field extraction."""

    def __init__(
        self,
        timeout: float = 15.0,
        max_workers: int = 4,
        user_agent: str = "feedpress/1.0",
        execution_id: str | None = None,
    ):
        """Initialize FeedProcessor with configuration.

        Args:
            timeout: HTTP request timeout in seconds
            max_workers: Maximum number of feeds fetched concurrently
            user_agent: User-Agent header sent with every request
            execution_id: Execution ID for logging context
        """
        self.timeout = timeout
        self.max_workers = max(1, max_workers)
        self.logger = create_execution_logger("feed_processor", execution_id)
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": user_agent})

        self.logger.info(
            "FeedProcessor initialized", timeout=timeout, max_workers=self.max_workers
        )

    def fetch_feeds(self, sources: list[FeedSource]) -> FetchReport:
        """Fetch and parse multiple feeds with bounded parallelism.

        Each feed is processed in its own task; results are merged in
        configuration order once every task has settled, so a slow or failing
        feed never affects its siblings or the output order.

        Args:
            sources: Feed sources to process

        Returns:
            FetchReport with the items of all successful feeds
        """
        self.logger.log_execution_start(feed_count=len(sources))
        batches: list[list[RawItem] | None] = [None] * len(sources)
        report = FetchReport()

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {
                executor.submit(self.process_feed, source): index
                for index, source in enumerate(sources)
            }
            for future in as_completed(futures):
                index = futures[future]
                source = sources[index]
                try:
                    batches[index] = future.result()
                except Exception as e:
                    self.logger.error(
                        f"Skipping feed {source.url}: {e}",
                        feed_url=source.url,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    report.errors.append(f"{source.url}: {e}")

        for source, batch in zip(sources, batches):
            if batch is None:
                report.feeds_failed += 1
                continue
            report.feeds_ok += 1
            report.items.extend(batch)
            self.logger.log_feed_processing(source.url, len(batch))

        self.logger.log_execution_end(
            success=report.feeds_failed == 0,
            total_items=len(report.items),
            feeds_ok=report.feeds_ok,
            feeds_failed=report.feeds_failed,
        )
        return report

    def process_feed(self, source: FeedSource) -> list[RawItem]:
        """Download and parse a single feed.

        Raises:
            FetchError: If the feed cannot be downloaded
            ParseError: If the document is not a readable feed
        """
        content = self.fetch_feed(source)
        return self.parse_feed(content, source)

    def fetch_feed(self, source: FeedSource) -> bytes:
        """Download raw feed content.

        Args:
            source: Feed to download

        Returns:
            Response body

        Raises:
            FetchError: On unsupported scheme, network error, timeout or
                non-success status
        """
        parsed_url = urlparse(source.url)
        if parsed_url.scheme not in ("http", "https"):
            raise FetchError(source.url, f"unsupported URL scheme '{parsed_url.scheme}'")

        try:
            self.logger.debug("Downloading feed content", feed_url=source.url)
            response = self.session.get(source.url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise FetchError(source.url, str(e)) from e

        self.logger.info(
            "Feed downloaded successfully",
            feed_url=source.url,
            status_code=response.status_code,
            content_length=len(response.content),
        )
        return response.content

    def parse_feed(self, content: bytes | str, source: FeedSource) -> list[RawItem]:
        """Parse a feed document into raw items.

        Entries without a title or link are dropped; a malformed entry is
        skipped without affecting its siblings.

        Raises:
            ParseError: If nothing feed-like could be recovered from the document
        """
        feed = feedparser.parse(content)

        if feed.bozo:
            if not feed.entries and not feed.get("version"):
                raise ParseError(
                    f"Not a readable feed: {feed.get('bozo_exception', 'unknown error')}"
                )
            self.logger.warning(
                f"Feed parsing warning for {source.url}: {feed.get('bozo_exception')}",
                feed_url=source.url,
                bozo_exception=str(feed.get("bozo_exception")),
            )

        feed_title = (feed.feed.get("title") or "").strip()

        items = []
        for entry in feed.entries:
            try:
                items.append(self.extract_item(entry, source, feed_title))
            except ParseError as e:
                self.logger.debug(
                    f"Dropping entry from {source.url}: {e}", feed_url=source.url
                )
            except Exception as e:
                self.logger.warning(
                    f"Failed to extract entry from {source.url}: {e}",
                    feed_url=source.url,
                    error=str(e),
                )

        self.logger.info(
            "Successfully parsed feed",
            feed_url=source.url,
            items_count=len(items),
            total_entries=len(feed.entries),
        )
        return items

    def extract_item(self, entry, source: FeedSource, feed_title: str = "") -> RawItem:
        """Extract a RawItem from a feedparser entry.

        Raises:
            ParseError: If the entry has no title or no link
        """
        title = (entry.get("title") or "").strip()
        link = (entry.get("link") or "").strip()
        if not title or not link:
            raise ParseError("entry is missing a title or link")

        published_raw = entry.get("published") or entry.get("updated") or None

        description_html = ""
        content = entry.get("content")
        if content and isinstance(content, list):
            description_html = content[0].get("value", "") or ""
        if not description_html:
            description_html = entry.get("summary") or entry.get("description") or ""

        return RawItem(
            title=title,
            link=link,
            published_raw=published_raw,
            description_html=description_html,
            enclosure_candidates=self.image_candidates(entry, link),
            feed_title=feed_title,
            source=source,
        )

    def image_candidates(self, entry, base_url: str = "") -> list[str]:
        """Collect image URLs in precedence order.

        Order: media content, media thumbnail, enclosure, first <img> in the
        entry HTML. Only absolute http(s) URLs are kept.
        """
        candidates = []

        for media in entry.get("media_content") or []:
            medium = media.get("medium")
            mime = media.get("type") or ""
            if medium and medium != "image":
                continue
            if mime and not mime.startswith("image/"):
                continue
            candidates.append(media.get("url"))

        for thumb in entry.get("media_thumbnail") or []:
            candidates.append(thumb.get("url"))

        for enclosure in entry.get("enclosures") or []:
            mime = enclosure.get("type") or ""
            if mime and not mime.startswith("image/"):
                continue
            candidates.append(enclosure.get("href") or enclosure.get("url"))

        html_sources = [c.get("value", "") for c in entry.get("content") or []]
        html_sources.append(entry.get("summary") or "")
        for html in html_sources:
            img_src = self.first_image_in_html(html)
            if img_src:
                candidates.append(img_src)
                break

        resolved = []
        for candidate in candidates:
            url = absolute_http_url(candidate, base_url)
            if url and url not in resolved:
                resolved.append(url)
        return resolved

    def first_image_in_html(self, html: str) -> str | None:
        """Return the src of the first <img> tag in an HTML fragment."""
        if not html or "<img" not in html.lower():
            return None
        soup = BeautifulSoup(html, "html.parser")
        img = soup.find("img", src=True)
        return img["src"].strip() if img else None


def clean_html(content: str | None) -> str:
    """Remove HTML tags from content and normalize whitespace.

    Args:
        content: Raw content that may contain HTML

    Returns:
        Clean text content without HTML tags
    """
    if not content:
        return ""

    if "<" not in content and ">" not in content:
        return " ".join(content.split())

    soup = BeautifulSoup(content, "html.parser")

    for script in soup(["script", "style"]):
        script.decompose()

    text = soup.get_text(separator=" ")

    # Stray brackets left over from broken markup
    text = text.replace("<", "").replace(">", "")

    return " ".join(text.split())


def absolute_http_url(candidate: str | None, base_url: str = "") -> str | None:
    """Resolve a candidate URL to an absolute http(s) URL, or None."""
    if not candidate or not isinstance(candidate, str):
        return None
    candidate = candidate.strip()
    if candidate.startswith("//"):
        candidate = "https:" + candidate
    elif base_url and not urlparse(candidate).scheme:
        candidate = urljoin(base_url, candidate)

    parsed = urlparse(candidate)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        return None
    return candidate


def parse_published(value: str | None, now: datetime | None = None) -> datetime:
    """Parse a feed date into an aware UTC datetime.

    Missing or unparseable values fall back to `now` (current time by default),
    naive values are taken as UTC.
    """
    fallback = now or datetime.now(UTC)
    if not value:
        return fallback

    try:
        published = date_parser.parse(value)
        if published.tzinfo is None:
            published = published.replace(tzinfo=UTC)
        return published.astimezone(UTC)
    except (ValueError, TypeError, OverflowError):
        return fallback
