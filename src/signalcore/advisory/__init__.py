"""Advisory (LLM) synthesis."""

from .advisor import Advisor
from .base import AdvisoryProvider
from .ollama import OllamaAdvisoryProvider
from .parsing import math_only_analysis, parse_advisory
from .prompts import build_synthesis_prompt

__all__ = [
    "Advisor",
    "AdvisoryProvider",
    "OllamaAdvisoryProvider",
    "build_synthesis_prompt",
    "parse_advisory",
    "math_only_analysis",
]
