"""
Content capability: generate and list blog posts.

`post.create` is the multi-phase example action. It writes the text,
saves the post (the primary artifact), then generates images. Failed
images never discard the saved post; the command ends `partial` with
the post id so the user can continue from there.
"""

import asyncio
import itertools
import json
import logging
import re
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

from cmdengine.core.actions import FunctionAction
from cmdengine.core.capabilities import Capability
from cmdengine.core.errors import ProviderError
from cmdengine.core.progress import ProgressSink, completed, failed, started
from cmdengine.core.schema import FieldKind, FieldSpec
from cmdengine.core.types import Result
from cmdengine.engine.matcher import PatternRule
from cmdengine.llm.client import strip_code_fences

logger = logging.getLogger(__name__)

MAX_IMAGES = 4

_WORD_NUMBERS = {
    "no": 0, "zero": 0, "a": 1, "an": 1, "one": 1, "two": 2, "three": 3,
    "four": 4, "five": 5, "six": 6, "seven": 7, "eight": 8, "nine": 9, "ten": 10,
}


def parse_count(word: str | None) -> int:
    """'two' -> 2, '3' -> 3, None -> 0. Unknown words raise ValueError."""
    if not word:
        return 0
    word = word.strip().lower()
    if word.isdigit():
        return int(word)
    if word in _WORD_NUMBERS:
        return _WORD_NUMBERS[word]
    raise ValueError(f"Not a count: {word}")


# =============================================================================
# Posts
# =============================================================================


@dataclass
class Post:
    """A saved blog post."""
    id: int
    title: str
    body: str
    topic: str = ""
    images: list[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "topic": self.topic,
            "images": list(self.images),
            "created_at": self.created_at.isoformat(),
        }


class PostRepository:
    """In-memory post storage."""

    def __init__(self) -> None:
        self._posts: dict[int, Post] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def create(self, title: str, body: str, topic: str = "") -> Post:
        with self._lock:
            post = Post(id=next(self._ids), title=title, body=body, topic=topic)
            self._posts[post.id] = post
        logger.debug(f"Saved post {post.id}: {title}")
        return post

    def attach_images(self, post_id: int, urls: list[str]) -> None:
        with self._lock:
            self._posts[post_id].images.extend(urls)

    def get(self, post_id: int) -> Post | None:
        return self._posts.get(post_id)

    def recent(self, limit: int = 10) -> list[Post]:
        return sorted(self._posts.values(), key=lambda p: p.id, reverse=True)[:limit]

    def count(self) -> int:
        return len(self._posts)


# =============================================================================
# Generators
# =============================================================================


@dataclass
class Draft:
    title: str
    body: str


class TextGenerator(Protocol):
    async def write_post(self, topic: str) -> Draft:
        ...


class ImageGenerator(Protocol):
    async def generate(self, prompt: str) -> str:
        ...


class LLMTextGenerator:
    """Writes post drafts with an LLMClient."""

    SYSTEM = "You write concise, friendly blog posts. Answer with JSON only."

    def __init__(self, llm, timeout: float = 60.0):
        self.llm = llm
        self.timeout = timeout

    @property
    def available(self) -> bool:
        return self.llm.configured

    async def write_post(self, topic: str) -> Draft:
        response = await self.llm.complete(
            f'Write a blog post about {json.dumps(topic)}. '
            'Return {"title": "...", "body": "..."}.',
            system=self.SYSTEM,
            json_mode=True,
            max_tokens=2048,
            timeout=self.timeout,
        )
        try:
            data = json.loads(strip_code_fences(response))
            return Draft(title=str(data["title"]).strip(), body=str(data["body"]).strip())
        except (json.JSONDecodeError, KeyError, TypeError) as e:
            raise ProviderError("Text generation returned an unusable draft") from e


class LLMImageGenerator:
    """Generates post images with an LLMClient."""

    def __init__(self, llm, timeout: float = 120.0, size: str = "1024x1024"):
        self.llm = llm
        self.timeout = timeout
        self.size = size

    @property
    def available(self) -> bool:
        return self.llm.configured

    async def generate(self, prompt: str) -> str:
        return await self.llm.generate_image(prompt, size=self.size, timeout=self.timeout)


# =============================================================================
# Actions
# =============================================================================


POST_CREATE_SCHEMA = (
    FieldSpec("topic", FieldKind.STRING, required=True, max_length=500,
              description="What the post is about"),
    FieldSpec("images", FieldKind.INTEGER, default=0, min_value=0, max_value=MAX_IMAGES,
              description="Number of images to generate"),
)

POST_LIST_SCHEMA = (
    FieldSpec("limit", FieldKind.INTEGER, default=10, min_value=1, max_value=50,
              description="How many posts to list"),
)


def _extract_post_request(match: re.Match) -> dict[str, Any]:
    return {"topic": match.group(1).strip(), "images": parse_count(match.group(2))}


PATTERN_RULES = [
    PatternRule(
        r"(?:write|create|draft)\s+(?:a\s+)?(?:new\s+)?(?:blog\s+)?post\s+(?:about|on)\s+(.+?)"
        r"(?:\s+with\s+(\w+)\s+images?)?\s*$",
        "post.create",
        extract=_extract_post_request,
    ),
    PatternRule(
        r"(?:list|show)\s+(?:me\s+)?(?:my\s+|all\s+|the\s+)?(?:recent\s+)?posts\s*$",
        "post.list",
    ),
]


class ContentModule:
    """Wires the content actions to their repository and generators."""

    def __init__(
        self,
        posts: PostRepository,
        text: TextGenerator,
        images: ImageGenerator,
        base_url: str = "",
        text_timeout: float = 60.0,
        image_timeout: float = 120.0,
    ):
        self.posts = posts
        self.text = text
        self.images = images
        self.base_url = base_url.rstrip("/")
        self.text_timeout = text_timeout
        self.image_timeout = image_timeout

    def post_url(self, post_id: int) -> str:
        return f"{self.base_url}/posts/{post_id}"

    async def create_post(self, payload: dict[str, Any], sink: ProgressSink) -> Result:
        """Write, save, then illustrate a post."""
        topic = payload["topic"]
        count = payload["images"]

        sink.emit(started("content", f"Writing a post about {topic}"))
        try:
            draft = await asyncio.wait_for(self.text.write_post(topic), timeout=self.text_timeout)
        except (ProviderError, asyncio.TimeoutError) as e:
            logger.warning(f"Text generation failed: {e}")
            sink.emit(failed("content", "Text generation failed"))
            return Result.fail("Could not write the post, please try again")
        sink.emit(completed("content", "Draft ready", title=draft.title))

        sink.emit(started("post", "Saving post"))
        post = self.posts.create(draft.title, draft.body, topic=topic)
        sink.emit(completed("post", f"Saved '{post.title}'", artifact=True, post_id=post.id))

        links = {"View post": self.post_url(post.id)}
        data: dict[str, Any] = {"post_id": post.id, "title": post.title}

        if count == 0:
            return Result.ok(f"Created post '{post.title}'", data=data, actions=links)

        urls = []
        for i in range(count):
            sink.emit(started("images", f"Generating image {i + 1} of {count}", done=i, total=count))
            try:
                url = await asyncio.wait_for(
                    self.images.generate(f"Illustration for a blog post titled '{post.title}'"),
                    timeout=self.image_timeout,
                )
                urls.append(url)
            except (ProviderError, asyncio.TimeoutError) as e:
                logger.warning(f"Image {i + 1}/{count} for post {post.id} failed: {e}")

        self.posts.attach_images(post.id, urls)
        data["images"] = urls

        if len(urls) < count:
            sink.emit(failed("images", f"{count - len(urls)} of {count} image(s) failed"))
            data["failed_images"] = count - len(urls)
            return Result.partial(
                f"Created post '{post.title}', but some images could not be generated",
                data=data,
                actions=links,
            )

        sink.emit(completed("images", f"Generated {count} image(s)", count=count))
        return Result.ok(
            f"Created post '{post.title}' with {count} image(s)",
            data=data,
            actions=links,
        )

    def list_posts(self, payload: dict[str, Any]) -> Result:
        posts = self.posts.recent(payload["limit"])
        return Result.ok(
            f"{len(posts)} post(s)",
            data={"posts": [p.to_dict() for p in posts]},
        )

    def capability(self, requires=None) -> Capability:
        return Capability(
            name="content",
            description="Blog post generation",
            feature_flag="content",
            requires=requires,
            actions=(
                FunctionAction(
                    name="post.create",
                    description="Write and publish a blog post, optionally with images",
                    progress_handler=self.create_post,
                    payload_schema=POST_CREATE_SCHEMA,
                    permission="posts.create",
                ),
                FunctionAction(
                    name="post.list",
                    description="List recent blog posts",
                    handler=self.list_posts,
                    payload_schema=POST_LIST_SCHEMA,
                ),
            ),
        )

    def rules(self) -> list[PatternRule]:
        return list(PATTERN_RULES)

    def context_providers(self) -> list:
        return [ContentStatsProvider(self.posts)]


class ContentStatsProvider:
    """Post counts and recent titles, to help the parser with follow-ups."""

    key = "content"

    def __init__(self, posts: PostRepository):
        self.posts = posts

    def context(self) -> dict[str, Any]:
        return {
            "post_count": self.posts.count(),
            "recent_titles": [p.title for p in self.posts.recent(5)],
        }
