from __future__ import annotations
from enum import Enum


class ArbSyncError(Exception):
    """Base class for every error raised by arb-sync."""


class LoadError(ArbSyncError):
    """Template, bundle, index or override file could not be loaded. Fatal."""


class CacheCorruptError(ArbSyncError):
    """Cache file exists but cannot be read. Recovered by starting empty."""


class PlaceholderMismatch(ArbSyncError):
    """Translated text lost, duplicated or reordered a placeholder tag."""

    def __init__(self, expected, found) -> None:
        self.expected = list(expected)
        self.found = list(found)
        super().__init__(f"placeholder mismatch: expected {self.expected}, got {self.found}")


class TranslationErrorKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    UNAUTHORIZED = "unauthorized"
    NETWORK = "network"
    INVALID_RESPONSE = "invalid_response"
    TIMEOUT = "timeout"


class TranslationError(ArbSyncError):
    def __init__(self, kind: TranslationErrorKind, message: str = "") -> None:
        self.kind = kind
        self.message = message
        super().__init__(f"{kind.value}: {message}" if message else kind.value)


class WriteError(ArbSyncError):
    """Persisting bundles or cache failed; no temp file is left behind."""
