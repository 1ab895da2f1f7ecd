"""Pick a model backend from the model id prefix."""

from typing import Optional, Union

from src.config import Settings
from src.llm.backends import AnthropicBackend, GeminiBackend

BACKEND_PREFIXES = {
    "claude-": AnthropicBackend,
    "gemini-": GeminiBackend,
}


def get_backend(
    model_id: str, settings: Optional[Settings] = None
) -> Union[AnthropicBackend, GeminiBackend]:
    """Build the backend for a model id ('claude-...' or 'gemini-...').

    Keys and timeouts come from settings; without settings the SDKs fall
    back to their own environment variables.

    Raises:
        ValueError: If no backend serves the model id
    """
    for prefix, backend_cls in BACKEND_PREFIXES.items():
        if model_id.startswith(prefix):
            if settings is None:
                return backend_cls(model_id)
            api_key = (
                settings.anthropic_api_key
                if backend_cls is AnthropicBackend
                else settings.gemini_api_key
            )
            return backend_cls(model_id, api_key=api_key, timeout=settings.llm_timeout)
    raise ValueError(
        f"Unknown model: '{model_id}'. "
        f"Expected one of: {', '.join(p + '...' for p in BACKEND_PREFIXES)}"
    )
