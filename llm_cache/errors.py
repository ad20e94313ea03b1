"""Exception classes for llm-cache."""


class LLMCacheError(Exception):
    """Base exception for all llm-cache errors."""

    pass


class DeserializationError(LLMCacheError, ValueError):
    """Raised when a stored value cannot be decoded."""

    def __init__(self, message: str, *, cache_key: str):
        super().__init__(message)
        self.cache_key = cache_key
