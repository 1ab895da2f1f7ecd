"""Vision / language layer.

Backends (Anthropic, Gemini) behind one protocol, plus the listing
client that builds prompts and parses model output.
"""

from src.llm.backends import (
    LLMCallResult,
    ModelBackend,
    AnthropicBackend,
    GeminiBackend,
)
from src.llm.factory import get_backend
from src.llm.client import ListingLLM, parse_llm_json_response

__all__ = [
    "LLMCallResult",
    "ModelBackend",
    "AnthropicBackend",
    "GeminiBackend",
    "get_backend",
    "ListingLLM",
    "parse_llm_json_response",
]
