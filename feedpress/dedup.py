"""Deduplication module for feedpress."""

import hashlib

from .logging_config import create_execution_logger
from .models import Post

POST_ID_LENGTH = 16


def generate_post_id(url: str) -> str:
    """Derive a stable post id from the canonical article URL.

    The same URL always yields the same id, across runs and machines.
    """
    return hashlib.sha256(url.strip().encode("utf-8")).hexdigest()[:POST_ID_LENGTH]


class Deduplicator:
    """Collapses posts sharing the same URL according to a precedence policy.

    Policies:
        first: the first occurrence wins.
        latest: the occurrence with the most recent published_at wins; on a
            tie the earlier occurrence is kept.
    """

    def __init__(self, policy: str = "first", execution_id: str | None = None):
        if policy not in ("first", "latest"):
            raise ValueError(f"Unknown dedup policy: {policy}")
        self.policy = policy
        self.logger = create_execution_logger("deduplicator", execution_id)
        self.duplicates_dropped = 0

    def deduplicate(self, posts: list[Post]) -> list[Post]:
        """Return posts with one entry per URL, keeping first-seen positions.

        The surviving post takes the position of the first occurrence of its
        URL, so the result order is deterministic for a given input order.
        """
        kept: dict[str, Post] = {}
        for post in posts:
            current = kept.get(post.url)
            if current is None:
                kept[post.url] = post
                continue

            self.duplicates_dropped += 1
            if self.policy == "latest" and post.published_at > current.published_at:
                kept[post.url] = post
                self.logger.debug(
                    "Replaced duplicate with newer post",
                    post_url=post.url,
                    policy=self.policy,
                )
            else:
                self.logger.debug(
                    "Dropped duplicate post", post_url=post.url, policy=self.policy
                )

        return list(kept.values())

    def merge(self, fresh: list[Post], existing: list[Post]) -> list[Post]:
        """Union freshly extracted posts with previously persisted ones.

        Fresh posts are placed first so that, under the `first` policy, the
        most recently seen metadata is retained.
        """
        merged = self.deduplicate(list(fresh) + list(existing))
        self.logger.info(
            "Merged fresh posts with existing manifest",
            fresh_count=len(fresh),
            existing_count=len(existing),
            merged_count=len(merged),
        )
        return merged
