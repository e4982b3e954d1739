"""Unit tests for configuration loading."""

import json
import os
from pathlib import Path
from unittest.mock import patch

import pytest

from feedpress.config import (
    DEFAULT_CATEGORIES,
    BedrockConfig,
    Config,
    PipelineConfig,
    parse_feed_entry,
)
from feedpress.exceptions import ConfigurationError
from feedpress.models import FeedSource


def write_feeds(tmp_path: Path, data) -> Path:
    path = tmp_path / "feeds.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


class TestConfigUnit:
    """Unit tests for Config."""

    def test_default_values(self):
        """Test that default configuration values are set correctly."""
        with patch.dict(os.environ, {}, clear=True):
            config = Config()

            assert config.feeds_file == Path("feeds.json")
            assert config.output_dir == Path(".")
            assert config.merge_mode == "replace"
            assert config.dedup_policy == "first"
            assert config.aws_region == "us-east-1"
            assert config.bedrock_model_id == "amazon.nova-micro-v1:0"
            assert config.log_level == "INFO"

    def test_environment_overrides(self, tmp_path):
        env = {
            "FEEDPRESS_CONFIG": str(tmp_path / "custom.json"),
            "FEEDPRESS_OUTPUT_DIR": str(tmp_path / "site"),
            "FEEDPRESS_MERGE_MODE": "merge",
            "FEEDPRESS_DEDUP_POLICY": "latest",
            "AWS_REGION": "eu-west-1",
            "BEDROCK_MODEL_ID": "meta.llama3-8b-instruct-v1:0",
            "LOG_LEVEL": "DEBUG",
        }
        with patch.dict(os.environ, env, clear=True):
            config = Config()

            assert config.feeds_file == tmp_path / "custom.json"
            assert config.output_dir == tmp_path / "site"
            assert config.merge_mode == "merge"
            assert config.dedup_policy == "latest"
            assert config.get_bedrock_config(enabled=True) == BedrockConfig(
                model_id="meta.llama3-8b-instruct-v1:0", region="eu-west-1", enabled=True
            )
            assert config.log_level == "DEBUG"

    def test_object_form(self, tmp_path):
        path = write_feeds(
            tmp_path,
            {
                "feeds": [
                    "https://a.example.com/rss",
                    {"url": "https://b.example.com/rss", "name": "B", "category": "world"},
                    {"url": "https://c.example.com/rss", "displayName": "C"},
                    {"url": "https://d.example.com/rss", "enabled": False},
                ],
                "maxItems": 25,
            },
        )

        config = Config(path)

        assert config.get_feed_sources() == [
            FeedSource(url="https://a.example.com/rss"),
            FeedSource(url="https://b.example.com/rss", name="B", category="world"),
            FeedSource(url="https://c.example.com/rss", name="C"),
        ]
        assert config.get_max_items() == 25

    def test_bare_list_form(self, tmp_path):
        path = write_feeds(tmp_path, ["https://a.example.com/rss", "https://b.example.com/rss"])

        config = Config(path)

        assert [s.url for s in config.get_feed_sources()] == [
            "https://a.example.com/rss",
            "https://b.example.com/rss",
        ]
        assert config.get_max_items() == 80

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            Config(tmp_path / "absent.json").load()

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "feeds.json"
        path.write_text("{broken", encoding="utf-8")

        with pytest.raises(ConfigurationError, match="Invalid JSON"):
            Config(path).load()

    def test_wrong_shape(self, tmp_path):
        with pytest.raises(ConfigurationError):
            Config(write_feeds(tmp_path, {"feeds": "https://a.example.com/rss"})).load()
        with pytest.raises(ConfigurationError):
            Config(write_feeds(tmp_path, 42)).load()

    def test_no_enabled_feeds(self, tmp_path):
        path = write_feeds(tmp_path, {"feeds": [{"url": "https://a.example.com/rss", "enabled": False}]})

        with pytest.raises(ConfigurationError, match="No enabled feeds"):
            Config(path).get_feed_sources()

    @pytest.mark.parametrize("value", [0, -1, "10", 2.5, True, None])
    def test_invalid_max_items(self, tmp_path, value):
        path = write_feeds(tmp_path, {"feeds": ["https://a.example.com/rss"], "maxItems": value})

        with pytest.raises(ConfigurationError, match="maxItems"):
            Config(path).get_max_items()

    def test_invalid_entries(self):
        with pytest.raises(ConfigurationError):
            parse_feed_entry("   ", 0)
        with pytest.raises(ConfigurationError):
            parse_feed_entry({"name": "No url"}, 1)
        with pytest.raises(ConfigurationError):
            parse_feed_entry(7, 2)

    def test_default_categories(self, tmp_path):
        config = Config(write_feeds(tmp_path, ["https://a.example.com/rss"]))

        categories = config.get_categories()

        assert [name for name, _ in categories] == [name for name, _ in DEFAULT_CATEGORIES]

    def test_custom_categories(self, tmp_path):
        path = write_feeds(
            tmp_path,
            {
                "feeds": ["https://a.example.com/rss"],
                "categories": [{"name": "space", "keywords": ["Rocket", "ORBIT", " "]}],
            },
        )

        assert Config(path).get_categories() == [("space", ["rocket", "orbit"])]

    def test_invalid_categories(self, tmp_path):
        path = write_feeds(tmp_path, {"feeds": ["https://a.example.com/rss"], "categories": [{"name": "x"}]})

        with pytest.raises(ConfigurationError):
            Config(path).get_categories()

    def test_pipeline_config_overrides(self, tmp_path):
        with patch.dict(os.environ, {"FEEDPRESS_MERGE_MODE": "merge"}, clear=True):
            config = Config(write_feeds(tmp_path, {"feeds": ["https://a.example.com/rss"], "maxItems": 10}))

            pipeline = config.get_pipeline_config(
                output_dir=tmp_path / "out", dedup_policy="latest", prune_pages=None
            )

        assert isinstance(pipeline, PipelineConfig)
        assert pipeline.max_items == 10
        assert pipeline.merge_mode == "merge"
        assert pipeline.dedup_policy == "latest"
        assert pipeline.prune_pages is False
        assert pipeline.manifest_path == tmp_path / "out" / "posts.json"
        assert pipeline.pages_dir == tmp_path / "out" / "posts"
        assert pipeline.threads_path == tmp_path / "out" / "threads.json"

    def test_invalid_mode_and_policy(self, tmp_path):
        config = Config(write_feeds(tmp_path, ["https://a.example.com/rss"]))

        with pytest.raises(ConfigurationError, match="merge mode"):
            config.get_pipeline_config(merge_mode="append")
        with pytest.raises(ConfigurationError, match="dedup policy"):
            config.get_pipeline_config(dedup_policy="random")
