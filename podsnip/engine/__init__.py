"""Local speech recognition engine: discovery, invocation, output parsing."""

from podsnip.engine.locator import EngineLocator
from podsnip.engine.parser import parse_segments
from podsnip.engine.runner import RecognitionRunner

__all__ = ["EngineLocator", "RecognitionRunner", "parse_segments"]
