from typing import Dict
import math

CHARS_PER_TOKEN = 4
DEFAULT_CONTEXT_LIMIT = 8192

# Context window per completion model
MODEL_CONTEXT_LIMITS: Dict[str, int] = {
    "gpt-4": 8192,
    "gpt-4-turbo": 128000,
    "gpt-3.5-turbo": 16385,
    "claude-3-opus": 200000,
    "claude-3-sonnet": 200000,
    "llama3": 8192,
}


def estimate_tokens(text: str) -> int:
    """Rough token estimate, one token per four characters"""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def model_context_limit(model: str) -> int:
    return MODEL_CONTEXT_LIMITS.get(model.lower(), DEFAULT_CONTEXT_LIMIT)
