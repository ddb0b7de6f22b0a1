"""Intent resolution, dispatch and streaming."""

from cmdengine.engine.matcher import PatternMatcher, PatternRule
from cmdengine.engine.parser import NO_MATCH, LLMStructuredParser, StructuredParser, build_prompt
from cmdengine.engine.processor import CommandProcessor, RecordingSink
from cmdengine.engine.stream import CommandExecution, StreamEncoder, format_frame

__all__ = [
    "NO_MATCH",
    "CommandExecution",
    "CommandProcessor",
    "LLMStructuredParser",
    "PatternMatcher",
    "PatternRule",
    "RecordingSink",
    "StreamEncoder",
    "StructuredParser",
    "build_prompt",
    "format_frame",
]
