"""
Provider fetchers for AI Model Sync.

One adapter per provider kind, all implementing the same fetch contract.
"""

from .base import (
    FetchError,
    Fetcher,
    FetchPermanentError,
    FetchResult,
    FetchStatus,
    FetchTransientError,
    classify_exception,
)
from .file_fetcher import FileFetcher
from .http_fetcher import HttpJsonFetcher
from .openai_fetcher import OpenAIModelsFetcher
from .registry import FetcherRegistry

__all__ = [
    "FetchError",
    "Fetcher",
    "FetchPermanentError",
    "FetchResult",
    "FetchStatus",
    "FetchTransientError",
    "FetcherRegistry",
    "FileFetcher",
    "HttpJsonFetcher",
    "OpenAIModelsFetcher",
    "classify_exception",
]
