"""Static page and manifest rendering for feedpress."""

import json
from datetime import UTC, datetime
from pathlib import Path

from .config import PipelineConfig
from .dedup import generate_post_id
from .logging_config import ExecutionLogger, create_execution_logger
from .models import Post
from .rss import absolute_http_url, parse_published

PLACEHOLDER_COLORS = ["#3b82f6", "#ef4444", "#10b981", "#f59e0b", "#8b5cf6", "#64748b"]

PAGE_TEMPLATE = """<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width,initial-scale=1">
  <title>{title}</title>
  <style>
    body{{font-family:system-ui,-apple-system,"Segoe UI",Roboto,sans-serif;margin:0;background:#fff;color:#111}}
    header{{padding:16px;border-bottom:1px solid #eee}}
    main{{padding:16px;max-width:760px;margin:0 auto}}
    h1{{font-size:22px;line-height:1.3;margin:0 0 8px}}
    .meta{{color:#666;font-size:13px;margin-bottom:16px}}
    .cover img,.cover svg{{width:100%;height:auto;border-radius:12px;display:block}}
    .summary{{line-height:1.6}}
    a{{color:#0a58ff}}
  </style>
</head>
<body>
  <header>
    <a href="{index_href}">&larr; Back to index</a>
  </header>
  <main>
    <h1>{title}</h1>
    <div class="meta">{published} &middot; {source_name} &middot; {category}</div>
    <div class="cover">{cover}</div>
    {summary}
    {source_link}
  </main>
</body>
</html>
"""


def escape_html(text: str | None) -> str:
    """Escape HTML special characters for text and attribute contexts."""
    if not text:
        return ""

    text = text.replace("&", "&amp;")
    text = text.replace("<", "&lt;")
    text = text.replace(">", "&gt;")
    text = text.replace('"', "&quot;")
    text = text.replace("'", "&#x27;")

    return text


def format_published(value: datetime) -> str:
    """Format a publish time for display."""
    return value.astimezone(UTC).strftime("%Y-%m-%d %H:%M UTC")


class PageRenderer:
    """Writes one static document per post and the posts.json manifest."""

    def __init__(self, config: PipelineConfig, execution_id: str | None = None):
        self.config = config
        self.logger = create_execution_logger("renderer", execution_id)

    def render_post(self, post: Post) -> str:
        """Render a self-contained HTML page for a post.

        All post fields come from untrusted feeds and are escaped; URLs that are
        not http(s) are never emitted as links.
        """
        image_url = absolute_http_url(post.image)
        if image_url:
            cover = (
                f'<img src="{escape_html(image_url)}" alt="{escape_html(post.title)}" '
                'loading="lazy">'
            )
        else:
            cover = self.placeholder_svg(post.category)

        summary = (
            f'<p class="summary">{escape_html(post.summary)}</p>' if post.summary else ""
        )

        article_url = absolute_http_url(post.url)
        source_link = (
            f'<p><a href="{escape_html(article_url)}" target="_blank" '
            'rel="noopener noreferrer">Read the original article</a></p>'
            if article_url
            else ""
        )

        return PAGE_TEMPLATE.format(
            title=escape_html(post.title),
            index_href=escape_html(self.config.index_href),
            published=escape_html(format_published(post.published_at)),
            source_name=escape_html(post.source_name),
            category=escape_html(post.category),
            cover=cover,
            summary=summary,
            source_link=source_link,
        )

    def placeholder_svg(self, label: str) -> str:
        """Generate an inline SVG placeholder carrying the category label."""
        label = label or self.config.default_category
        color = PLACEHOLDER_COLORS[sum(map(ord, label)) % len(PLACEHOLDER_COLORS)]
        safe_label = escape_html(label)
        return (
            '<svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 640 360" '
            f'role="img" aria-label="{safe_label}">'
            f'<rect width="640" height="360" fill="{color}"/>'
            '<text x="320" y="195" font-family="sans-serif" font-size="48" '
            f'fill="#fff" text-anchor="middle">{safe_label}</text>'
            "</svg>"
        )

    def write_pages(self, posts: list[Post]) -> int:
        """Write the page of every post, returning the number written."""
        written = 0
        for post in posts:
            try:
                path = self.config.output_dir / post.page_path
                path.parent.mkdir(parents=True, exist_ok=True)
                path.write_text(self.render_post(post), encoding="utf-8")
                written += 1
                self.logger.log_post_processing(post.url, "page_written")
            except OSError as e:
                self.logger.error(
                    f"Failed to write page for {post.url}: {e}",
                    post_url=post.url,
                    error=str(e),
                )
        return written

    def write_manifest(self, posts: list[Post], updated_at: datetime | None = None) -> Path:
        """Write posts.json in its object form."""
        updated_at = updated_at or datetime.now(UTC)
        manifest = {
            "updatedAt": updated_at.isoformat(),
            "posts": [post.to_dict() for post in posts],
        }
        path = self.config.manifest_path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(manifest, indent=2, ensure_ascii=False), encoding="utf-8")
        self.logger.info("Manifest written", manifest_path=str(path), posts_count=len(posts))
        return path

    def prune_pages(self, posts: list[Post]) -> int:
        """Delete rendered pages whose post is no longer in the manifest."""
        pages_dir = self.config.pages_dir
        if not pages_dir.is_dir():
            return 0

        keep = {Path(post.page_path).name for post in posts}
        removed = 0
        for page in pages_dir.glob("*.html"):
            if page.name in keep:
                continue
            try:
                page.unlink()
                removed += 1
            except OSError as e:
                self.logger.warning(f"Failed to prune {page}: {e}", page=str(page))

        self.logger.info("Pruned stale pages", pages_pruned=removed)
        return removed


def load_manifest(
    path: Path, logger: ExecutionLogger | None = None, now: datetime | None = None
) -> list[Post]:
    """Load posts from an existing manifest.

    Accepts the object form `{updatedAt, posts}` and the older bare-list form.
    A missing file yields no posts; a corrupt one is logged and ignored.
    """
    logger = logger or create_execution_logger("renderer")
    if not path.exists():
        return []

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Ignoring unreadable manifest {path}: {e}", manifest_path=str(path))
        return []

    entries = data if isinstance(data, list) else data.get("posts") if isinstance(data, dict) else None
    if not isinstance(entries, list):
        logger.warning(f"Ignoring manifest with unexpected shape: {path}", manifest_path=str(path))
        return []

    posts = []
    for entry in entries:
        post = post_from_dict(entry, now)
        if post is None:
            logger.debug("Dropping unusable manifest entry", manifest_path=str(path))
            continue
        posts.append(post)
    return posts


def _text(value) -> str | None:
    """Return a manifest value as stripped text; non-scalar values are dropped."""
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        return None
    return str(value).strip() or None


def post_from_dict(data, now: datetime | None = None) -> Post | None:
    """Rebuild a Post from its manifest form, tolerating legacy field names.

    Fields of the wrong type are treated as absent, so a hand-edited
    manifest never breaks page rendering.
    """
    if not isinstance(data, dict):
        return None

    title = _text(data.get("title"))
    url = _text(data.get("url")) or _text(data.get("sourceUrl")) or _text(data.get("link"))
    if not title or not url:
        return None

    post_id = generate_post_id(url)
    published = (
        _text(data.get("publishedAt"))
        or _text(data.get("published"))
        or _text(data.get("date"))
        or _text(data.get("pubDate"))
    )
    image = data.get("image")

    return Post(
        id=post_id,
        title=title,
        url=url,
        source_name=_text(data.get("sourceName")) or _text(data.get("source")) or "",
        published_at=parse_published(published, now),
        category=_text(data.get("category")) or "general",
        page_path=f"posts/{post_id}.html",
        image=(image.strip() or None) if isinstance(image, str) else None,
        summary=_text(data.get("summary")),
    )
