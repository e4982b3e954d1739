"""Configuration management for feedpress."""

import json
import os
from dataclasses import dataclass, field
from pathlib import Path

from .exceptions import ConfigurationError
from .models import FeedSource

MERGE_MODES = ("replace", "merge")
DEDUP_POLICIES = ("first", "latest")

# Ordered keyword table; first matching set wins.
DEFAULT_CATEGORIES: list[tuple[str, list[str]]] = [
    ("scandal", ["scandal", "arrest", "lawsuit", "leaked", "allegation", "misconduct"]),
    ("politics", ["election", "minister", "parliament", "senate", "president", "government", "policy"]),
    ("sports", ["tournament", "league", "championship", "olympic", "grand prix", "world cup"]),
    ("business", ["stock market", "earnings", "economy", "startup", "merger", "central bank"]),
    ("technology", ["artificial intelligence", "software", "smartphone", "semiconductor", "cyber", "robot"]),
    ("entertainment", ["movie", "film", "music", "celebrity", "drama", "album", "hollywood"]),
]


@dataclass
class PipelineConfig:
    """Configuration for the fetch/aggregate/render pipeline."""

    max_items: int = 80
    summary_length: int = 200
    merge_mode: str = "replace"
    dedup_policy: str = "first"
    fetch_timeout: float = 15.0
    max_workers: int = 4
    default_category: str = "general"
    prune_pages: bool = False
    output_dir: Path = Path(".")
    index_href: str = "../index.html"
    user_agent: str = "feedpress/1.0 (+static news aggregator)"
    categories: list[tuple[str, list[str]]] = field(
        default_factory=lambda: [(name, list(words)) for name, words in DEFAULT_CATEGORIES]
    )

    @property
    def manifest_path(self) -> Path:
        return self.output_dir / "posts.json"

    @property
    def pages_dir(self) -> Path:
        return self.output_dir / "posts"

    @property
    def threads_path(self) -> Path:
        return self.output_dir / "threads.json"


@dataclass
class BedrockConfig:
    """Configuration for Amazon Bedrock reaction synthesis."""

    model_id: str = "amazon.nova-micro-v1:0"
    region: str = "us-east-1"
    max_tokens: int = 500
    enabled: bool = False
    max_threads: int = 8


class Config:
    """Main configuration manager.

    This is the only place that reads the process environment; everything it
    resolves is handed to the pipeline components explicitly.
    """

    # Default feeds file path
    FEEDS_FILE = "feeds.json"

    def __init__(self, feeds_file: str | Path | None = None):
        """Initialize configuration from environment variables."""
        self.feeds_file = Path(
            feeds_file or os.getenv("FEEDPRESS_CONFIG", self.FEEDS_FILE)
        )
        self.output_dir = Path(os.getenv("FEEDPRESS_OUTPUT_DIR", "."))
        self.merge_mode = os.getenv("FEEDPRESS_MERGE_MODE", "replace")
        self.dedup_policy = os.getenv("FEEDPRESS_DEDUP_POLICY", "first")
        self.aws_region = os.getenv(
            "AWS_REGION", os.getenv("AWS_DEFAULT_REGION", "us-east-1")
        )
        self.bedrock_model_id = os.getenv("BEDROCK_MODEL_ID", "amazon.nova-micro-v1:0")
        self.log_level = os.getenv("LOG_LEVEL", "INFO")
        self._data: dict | None = None

    def load(self) -> dict:
        """Read and structurally validate the feeds file.

        Raises:
            ConfigurationError: If the file is absent, not JSON, or not a
                recognized shape
        """
        if self._data is not None:
            return self._data

        if not self.feeds_file.exists():
            raise ConfigurationError(f"Feeds file not found: {self.feeds_file}")

        try:
            with open(self.feeds_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in feeds file: {e}") from e
        except OSError as e:
            raise ConfigurationError(f"Error reading feeds file: {e}") from e

        # A bare list of feed entries is accepted as shorthand
        if isinstance(data, list):
            data = {"feeds": data}

        if not isinstance(data, dict) or not isinstance(data.get("feeds"), list):
            raise ConfigurationError(
                "Feeds file must be a list of feeds or an object with a 'feeds' list"
            )

        self._data = data
        return data

    def get_feed_sources(self) -> list[FeedSource]:
        """Get enabled feed sources from the feeds file."""
        data = self.load()
        sources = []
        for index, entry in enumerate(data["feeds"]):
            source = parse_feed_entry(entry, index)
            if source.enabled:
                sources.append(source)

        if not sources:
            raise ConfigurationError(f"No enabled feeds found in {self.feeds_file}")

        return sources

    def get_max_items(self) -> int:
        """Get the manifest bound, validating the optional top-level maxItems."""
        data = self.load()
        value = data.get("maxItems", PipelineConfig.max_items)
        if isinstance(value, bool) or not isinstance(value, int) or value < 1:
            raise ConfigurationError(f"maxItems must be a positive integer, got {value!r}")
        return value

    def get_categories(self) -> list[tuple[str, list[str]]]:
        """Get the ordered category keyword table."""
        data = self.load()
        raw = data.get("categories")
        if raw is None:
            return [(name, list(words)) for name, words in DEFAULT_CATEGORIES]

        if not isinstance(raw, list):
            raise ConfigurationError("'categories' must be a list")

        categories = []
        for entry in raw:
            if (
                not isinstance(entry, dict)
                or not isinstance(entry.get("name"), str)
                or not isinstance(entry.get("keywords"), list)
            ):
                raise ConfigurationError(
                    f"Invalid category entry (need name and keywords): {entry!r}"
                )
            keywords = [str(word).lower() for word in entry["keywords"] if str(word).strip()]
            categories.append((entry["name"], keywords))
        return categories

    def get_pipeline_config(self, **overrides) -> PipelineConfig:
        """Get pipeline configuration, applying explicit overrides last."""
        config = PipelineConfig(
            max_items=self.get_max_items(),
            merge_mode=self.merge_mode,
            dedup_policy=self.dedup_policy,
            output_dir=self.output_dir,
            categories=self.get_categories(),
        )
        for key, value in overrides.items():
            if value is not None:
                setattr(config, key, value)

        if config.merge_mode not in MERGE_MODES:
            raise ConfigurationError(
                f"merge mode must be one of {MERGE_MODES}, got {config.merge_mode!r}"
            )
        if config.dedup_policy not in DEDUP_POLICIES:
            raise ConfigurationError(
                f"dedup policy must be one of {DEDUP_POLICIES}, got {config.dedup_policy!r}"
            )
        return config

    def get_bedrock_config(self, enabled: bool = False) -> BedrockConfig:
        """Get Bedrock configuration."""
        return BedrockConfig(
            model_id=self.bedrock_model_id,
            region=self.aws_region,
            enabled=enabled,
        )


def parse_feed_entry(entry, index: int = 0) -> FeedSource:
    """Convert one feeds-file entry (URL string or object) into a FeedSource."""
    if isinstance(entry, str):
        url = entry.strip()
        if not url:
            raise ConfigurationError(f"Feed entry {index} is an empty URL")
        return FeedSource(url=url)

    if not isinstance(entry, dict):
        raise ConfigurationError(f"Feed entry {index} must be a URL or an object")

    url = entry.get("url")
    if not isinstance(url, str) or not url.strip():
        raise ConfigurationError(f"Feed entry {index} is missing 'url'")

    return FeedSource(
        url=url.strip(),
        name=entry.get("name") or entry.get("displayName") or None,
        category=entry.get("category") or None,
        enabled=bool(entry.get("enabled", True)),
    )
