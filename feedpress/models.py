"""Data models for feedpress."""

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class FeedSource:
    """A configured feed URL with optional display metadata."""

    url: str
    name: str | None = None
    category: str | None = None
    enabled: bool = True


@dataclass
class RawItem:
    """Represents a single parsed feed entry before normalization."""

    title: str
    link: str
    published_raw: str | None
    description_html: str
    enclosure_candidates: list[str] = field(default_factory=list)
    feed_title: str = ""
    source: FeedSource | None = None


@dataclass
class Post:
    """Normalized, durable representation of one syndicated article."""

    id: str
    title: str
    url: str
    source_name: str
    published_at: datetime
    category: str
    page_path: str
    image: str | None = None
    summary: str | None = None

    def to_dict(self) -> dict:
        """Serialize to the manifest JSON form."""
        return {
            "id": self.id,
            "title": self.title,
            "url": self.url,
            "sourceName": self.source_name,
            "publishedAt": self.published_at.isoformat(),
            "image": self.image,
            "summary": self.summary,
            "category": self.category,
            "pagePath": self.page_path,
        }


@dataclass
class Comment:
    """One fictitious reaction line."""

    no: int
    text: str
    likes: int

    def to_dict(self) -> dict:
        return {"no": self.no, "text": self.text, "likes": self.likes}


@dataclass
class Thread:
    """Synthetic reaction thread attached to a post."""

    title: str
    url: str
    board: str
    date: str
    popularity: int
    comments: list[Comment]  # Exactly 3 entries

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "url": self.url,
            "board": self.board,
            "date": self.date,
            "popularity": self.popularity,
            "comments": [comment.to_dict() for comment in self.comments],
        }
