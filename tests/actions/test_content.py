"""
Tests for the content capability (blog posts with images).
"""

import json
from unittest.mock import AsyncMock

import pytest

from cmdengine.actions.content import (
    PATTERN_RULES,
    ContentModule,
    ContentStatsProvider,
    LLMTextGenerator,
    PostRepository,
    parse_count,
)
from cmdengine.core.errors import ProviderError
from cmdengine.core.progress import BufferingSink
from cmdengine.core.types import ResultStatus, StepStatus
from cmdengine.engine.matcher import PatternMatcher

from conftest import FakeImageGenerator, FakeTextGenerator

CONTENT_ACTIONS = ["post.create", "post.list"]


def module(text=None, images=None) -> ContentModule:
    return ContentModule(
        PostRepository(),
        text or FakeTextGenerator(),
        images or FakeImageGenerator(),
        base_url="https://example.test/",
    )


class TestParseCount:
    def test_words_and_digits(self):
        assert parse_count("two") == 2
        assert parse_count("an") == 1
        assert parse_count("3") == 3
        assert parse_count(None) == 0

    def test_unknown_word(self):
        with pytest.raises(ValueError):
            parse_count("some")


class TestPatternRules:
    """Tests for the content pattern rules."""

    def test_post_with_images(self):
        intent = PatternMatcher(PATTERN_RULES).match(
            "Write a blog post about spring gardening with two images", CONTENT_ACTIONS
        )
        assert intent.action == "post.create"
        assert intent.payload == {"topic": "spring gardening", "images": 2}

    def test_post_without_images(self):
        intent = PatternMatcher(PATTERN_RULES).match("draft a post on tea", CONTENT_ACTIONS)
        assert intent.payload == {"topic": "tea", "images": 0}

    def test_unparseable_count_falls_through(self):
        assert PatternMatcher(PATTERN_RULES).match(
            "write a post about cats with some images", CONTENT_ACTIONS
        ) is None

    def test_list_posts(self):
        intent = PatternMatcher(PATTERN_RULES).match("show me my recent posts", CONTENT_ACTIONS)
        assert intent.action == "post.list"
        assert intent.payload == {}


class TestCreatePost:
    """Tests for ContentModule.create_post."""

    @pytest.mark.asyncio
    async def test_success_with_images(self):
        content = module()
        sink = BufferingSink()

        result = await content.create_post({"topic": "tea", "images": 2}, sink)

        assert result.status == ResultStatus.SUCCESS
        assert result.data == {
            "post_id": 1,
            "title": "All about tea",
            "images": ["https://img.test/1.png", "https://img.test/2.png"],
        }
        assert result.actions == {"View post": "https://example.test/posts/1"}
        assert content.posts.get(1).images == result.data["images"]

        terminal = [(s.label, s.status) for s in sink.steps if s.is_terminal]
        assert terminal == [
            ("content", StepStatus.COMPLETED),
            ("post", StepStatus.COMPLETED),
            ("images", StepStatus.COMPLETED),
        ]
        assert [s for s in sink.steps if s.artifact][0].data == {"post_id": 1}

        image_progress = [s for s in sink.steps if s.label == "images" and not s.is_terminal]
        assert [s.message for s in image_progress] == ["Generating image 1 of 2", "Generating image 2 of 2"]
        assert [s.data for s in image_progress] == [{"done": 0, "total": 2}, {"done": 1, "total": 2}]

    @pytest.mark.asyncio
    async def test_no_images(self):
        content = module()
        result = await content.create_post({"topic": "tea", "images": 0}, BufferingSink())
        assert result.status == ResultStatus.SUCCESS
        assert "images" not in result.data

    @pytest.mark.asyncio
    async def test_image_failure_is_partial(self):
        content = module(images=FakeImageGenerator(fail_on=(2,)))
        sink = BufferingSink()

        result = await content.create_post({"topic": "tea", "images": 3}, sink)

        assert result.status == ResultStatus.PARTIAL
        assert result.data["post_id"] == 1
        assert result.data["failed_images"] == 1
        assert result.data["images"] == ["https://img.test/1.png", "https://img.test/3.png"]
        assert sink.steps[-1].label == "images"
        assert sink.steps[-1].status == StepStatus.FAILED
        assert content.posts.count() == 1

    @pytest.mark.asyncio
    async def test_text_failure_saves_nothing(self):
        content = module(text=FakeTextGenerator(fail=True))
        sink = BufferingSink()

        result = await content.create_post({"topic": "tea", "images": 1}, sink)

        assert result.status == ResultStatus.FAILED
        assert content.posts.count() == 0
        assert [(s.label, s.status) for s in sink.steps] == [
            ("content", StepStatus.IN_PROGRESS),
            ("content", StepStatus.FAILED),
        ]


class TestContentThroughEngine:
    """post.create and post.list through the processor."""

    @pytest.mark.asyncio
    async def test_partial_result_keeps_post(self, make_engine):
        engine = make_engine(image_generator=FakeImageGenerator(fail_on=(1,)))
        editor = engine.users.get_user("editor")

        result = await engine.processor.process("write a post about tea with one image", editor)

        assert result.status == ResultStatus.PARTIAL
        assert result.succeeded
        assert result.data["post_id"] == 1
        assert "images: failed - 1 of 1 image(s) failed" in result.completed_steps

    @pytest.mark.asyncio
    async def test_guest_cannot_create_but_can_list(self, engine):
        guest = engine.users.get_user("guest")

        denied = await engine.processor.process("write a post about tea", guest)
        listed = await engine.processor.process("list posts", guest)

        assert denied.status == ResultStatus.FAILED
        assert denied.data["permission"] == "posts.create"
        assert listed.status == ResultStatus.SUCCESS
        assert listed.data == {"posts": []}

    @pytest.mark.asyncio
    async def test_list_after_create(self, engine):
        admin = engine.users.get_user("admin")
        await engine.processor.process("write a post about tea", admin)
        await engine.processor.process("write a post about coffee", admin)

        result = await engine.processor.process("list posts", admin)

        assert result.message == "2 post(s)"
        assert [p["title"] for p in result.data["posts"]] == ["All about coffee", "All about tea"]


class TestContentStatsProvider:
    def test_snapshot(self):
        posts = PostRepository()
        posts.create("First", "body")
        posts.create("Second", "body")

        assert ContentStatsProvider(posts).context() == {
            "post_count": 2,
            "recent_titles": ["Second", "First"],
        }


class TestLLMTextGenerator:
    """Tests for the LLM-backed draft writer."""

    @pytest.mark.asyncio
    async def test_parses_draft(self):
        llm = AsyncMock()
        llm.complete.return_value = json.dumps({"title": " Tea ", "body": "Tea is great."})

        draft = await LLMTextGenerator(llm, timeout=5).write_post("tea")

        assert draft.title == "Tea"
        assert draft.body == "Tea is great."
        assert llm.complete.call_args.kwargs["json_mode"] is True

    @pytest.mark.asyncio
    async def test_unusable_draft(self):
        llm = AsyncMock()
        llm.complete.return_value = '{"headline": "Tea"}'
        with pytest.raises(ProviderError):
            await LLMTextGenerator(llm).write_post("tea")

    @pytest.mark.asyncio
    async def test_fenced_draft(self):
        llm = AsyncMock()
        llm.complete.return_value = '```json\n{"title": "Tea", "body": "Tea is great."}\n```'

        draft = await LLMTextGenerator(llm).write_post("tea")

        assert draft.title == "Tea"
