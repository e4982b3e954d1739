"""Reaction thread synthesis using Amazon Bedrock with deterministic fallback."""

import hashlib
import json
import re
import time
from datetime import UTC, datetime
from pathlib import Path

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .config import BedrockConfig
from .exceptions import ExternalServiceError
from .logging_config import create_execution_logger
from .models import Comment, Post, Thread

COMMENT_COUNT = 3
COMMENT_MAX_CHARS = 60
FILLER_COMMENT = "Reactions are still coming in"
THREADS_NOTE = "The reactions on this page are fictitious comments generated from the news headline."


class ReactionSynthesizer:
    """Generates fictitious forum reactions for posts, never failing the run."""

    TEMPLATE_FILE = "prompts/reaction_template.txt"

    def __init__(self, config: BedrockConfig, execution_id: str | None = None):
        """Initialize the synthesizer with Bedrock configuration."""
        self.config = config
        self.logger = create_execution_logger("reactions", execution_id)
        self.bedrock_client = None
        self.prompt_template = self._load_prompt_template()
        self._initialize_bedrock_client()

    def _initialize_bedrock_client(self) -> None:
        """Initialize Bedrock client with error handling."""
        try:
            self.bedrock_client = boto3.client(
                "bedrock-runtime", region_name=self.config.region
            )
            self.logger.info("Initialized Bedrock client", region=self.config.region)
        except (BotoCoreError, ClientError) as e:
            self.logger.warning(
                f"Failed to initialize Bedrock client: {e}", error=str(e)
            )
            self.bedrock_client = None

    def _load_prompt_template(self) -> str:
        """Load prompt template from file."""
        template_file = Path(self.TEMPLATE_FILE)
        if template_file.exists():
            try:
                return template_file.read_text(encoding="utf-8")
            except OSError as e:
                self.logger.warning(f"Failed to load template file: {e}")

        # Same wording as prompts/reaction_template.txt
        return """You are the editor of a news round-up site.
Write an example of how an online forum might react to the news below.

RULES:
- The comments are fictitious. Never quote or reproduce real posts from any forum or person.
- No defamation, insults or statements presented as fact about real people.
- Keep each comment under 60 characters.

NEWS:
Title: {title}
Category: {category}

Reply with JSON only, no prose, in exactly this shape:
{
  "board": "politics/entertainment/sports/business/technology/general",
  "popularity": 0-100,
  "comments": [
    {"text": "comment", "likes": 0},
    {"text": "comment", "likes": 0},
    {"text": "comment", "likes": 0}
  ]
}
"""

    def build_prompt(self, title: str, category: str) -> str:
        """Fill the template; plain replacement keeps the JSON braces intact."""
        return self.prompt_template.replace("{title}", title).replace(
            "{category}", category
        )

    def synthesize(self, post: Post) -> Thread:
        """Produce a reaction thread for a post.

        Any service failure or malformed reply is replaced by deterministic
        defaults, so this never raises for a well-formed Post.
        """
        reply: dict = {}
        try:
            text = self.invoke(self.build_prompt(post.title, post.category))
            reply = parse_reply(text)
            self.logger.log_post_processing(post.url, "reactions_generated")
        except ExternalServiceError as e:
            self.logger.warning(
                f"Using default reactions for {post.url}: {e}",
                post_url=post.url,
                error=str(e),
            )

        return build_thread(post, reply)

    def invoke(self, prompt: str) -> str:
        """Send a prompt to Bedrock and return the generated text.

        Raises:
            ExternalServiceError: If the client is unavailable, the call fails
                or the reply carries no text
        """
        if not self.bedrock_client:
            raise ExternalServiceError("Bedrock client not available")

        is_llama = "llama" in self.config.model_id.lower()
        if is_llama:
            request_body = {
                "prompt": prompt,
                "max_gen_len": self.config.max_tokens,
                "temperature": 0.7,
            }
        else:
            # Amazon Nova / Mistral: Invoke API messages format
            request_body = {
                "messages": [{"role": "user", "content": [{"text": prompt}]}],
                "inferenceConfig": {
                    "maxTokens": self.config.max_tokens,
                    "temperature": 0.7,
                },
            }

        try:
            start_time = time.time()
            response = self.bedrock_client.invoke_model(
                modelId=self.config.model_id,
                body=json.dumps(request_body),
                contentType="application/json",
                accept="application/json",
            )
            response_time_ms = int((time.time() - start_time) * 1000)
            response_body = json.loads(response["body"].read())
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "")
            raise ExternalServiceError(f"Bedrock client error: {error_code}") from e
        except (BotoCoreError, ValueError, KeyError, TypeError, AttributeError) as e:
            raise ExternalServiceError(f"Bedrock call failed: {e}") from e

        text = reply_text(response_body, is_llama)
        if not text or not text.strip():
            raise ExternalServiceError(
                f"Empty or malformed reply from {self.config.model_id}: {str(response_body)[:200]}"
            )

        self.logger.info(
            "Bedrock reply received",
            model=self.config.model_id,
            response_time_ms=response_time_ms,
            response_length=len(text),
        )
        return text.strip()

    def build_threads(self, posts: list[Post], updated_at: datetime | None = None) -> dict:
        """Synthesize threads for the top posts and return the threads document."""
        updated_at = updated_at or datetime.now(UTC)
        threads = [self.synthesize(post) for post in posts[: self.config.max_threads]]
        return {
            "updatedAt": updated_at.isoformat(),
            "note": THREADS_NOTE,
            "threads": [thread.to_dict() for thread in threads],
        }


def reply_text(response_body, is_llama: bool = False) -> str | None:
    """Pull the generated text out of an invoke_model response body.

    Returns None when any level of the body has an unexpected shape.
    """
    if not isinstance(response_body, dict):
        return None

    if is_llama:
        text = response_body.get("generation")
        return text if isinstance(text, str) else None

    output = response_body.get("output")
    if not isinstance(output, dict):
        return None
    message = output.get("message")
    if not isinstance(message, dict):
        return None
    content = message.get("content")
    if not isinstance(content, list) or not content or not isinstance(content[0], dict):
        return None
    text = content[0].get("text")
    return text if isinstance(text, str) else None


def parse_reply(text: str) -> dict:
    """Extract the JSON object from a model reply.

    Tolerates fenced code blocks and prose around the object.

    Raises:
        ExternalServiceError: If no JSON object can be decoded
    """
    candidate = text.strip()
    fenced = re.search(r"```(?:json)?\s*(.*?)```", candidate, re.DOTALL)
    if fenced:
        candidate = fenced.group(1).strip()

    start = candidate.find("{")
    end = candidate.rfind("}")
    if start == -1 or end <= start:
        raise ExternalServiceError("Reply contains no JSON object")

    try:
        data = json.loads(candidate[start : end + 1])
    except json.JSONDecodeError as e:
        raise ExternalServiceError(f"Reply is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ExternalServiceError("Reply JSON is not an object")
    return data


def _seed(*parts) -> int:
    """Stable integer derived from the given values."""
    digest = hashlib.sha256("|".join(str(p) for p in parts).encode("utf-8")).hexdigest()
    return int(digest[:8], 16)


def _as_int(value) -> int | None:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        return None
    try:
        return int(round(float(value)))
    except (ValueError, OverflowError):
        # Non-numeric strings, NaN and infinities
        return None


def shorten(text: str, limit: int = COMMENT_MAX_CHARS) -> str:
    text = " ".join(text.split())
    return text if len(text) <= limit else text[: limit - 1] + "…"


def build_thread(post: Post, reply: dict) -> Thread:
    """Combine a (possibly partial) reply with deterministic defaults."""
    board = reply.get("board")
    if not isinstance(board, str) or not board.strip():
        board = post.category or "general"

    popularity = _as_int(reply.get("popularity", reply.get("hot")))
    if popularity is None:
        popularity = 40 + _seed(post.id, "popularity") % 40
    popularity = max(0, min(100, popularity))

    raw_comments = reply.get("comments", reply.get("posts"))
    if not isinstance(raw_comments, list):
        raw_comments = []

    comments = []
    for raw in raw_comments[:COMMENT_COUNT]:
        no = len(comments) + 1
        text = raw.get("text") if isinstance(raw, dict) else raw
        if not isinstance(text, str) or not text.strip():
            text = FILLER_COMMENT
        likes = _as_int(raw.get("likes")) if isinstance(raw, dict) else None
        if likes is None or likes < 0:
            likes = _seed(post.id, no) % 20
        comments.append(Comment(no=no, text=shorten(text), likes=likes))

    while len(comments) < COMMENT_COUNT:
        no = len(comments) + 1
        comments.append(Comment(no=no, text=FILLER_COMMENT, likes=_seed(post.id, no) % 20))

    return Thread(
        title=f"[Reactions] {post.title}",
        url=post.url,
        board=board.strip(),
        date=post.published_at.isoformat(),
        popularity=popularity,
        comments=comments,
    )


def write_threads(path: Path, document: dict) -> Path:
    """Write the threads document to disk."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(document, indent=2, ensure_ascii=False), encoding="utf-8")
    return path
