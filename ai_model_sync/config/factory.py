"""
Builds runtime components from a loaded configuration.
"""

import os
from typing import Optional

import openai

from ai_model_sync.core.publish import CommandPublisher, CompositePublisher, MarkerFilePublisher, PublishSink
from ai_model_sync.fetchers import FetcherRegistry, FileFetcher, HttpJsonFetcher, OpenAIModelsFetcher
from ai_model_sync.fetchers.base import Fetcher
from ai_model_sync.storage.base import DatasetStore
from ai_model_sync.storage.json_store import JsonDirectoryStore
from ai_model_sync.storage.repository import SqliteDatasetStore

from .loader import AppConfig, ConfigError, FetcherConfig, FetcherType, StoreBackend, StoreConfig


def build_store(config: StoreConfig) -> DatasetStore:
    """Create the dataset store named by the configuration."""
    if config.backend == StoreBackend.JSON:
        return JsonDirectoryStore(config.path)
    return SqliteDatasetStore(config.path)


def build_fetcher(config: FetcherConfig) -> Fetcher:
    """Create one fetcher adapter from its configuration."""
    options = config.options
    if config.type == FetcherType.FILE:
        return FileFetcher(options["directory"])
    if config.type == FetcherType.HTTP:
        return HttpJsonFetcher(options["url"], headers=options.get("headers"))

    api_key = None
    if options.get("api_key_env"):
        api_key = os.environ.get(options["api_key_env"])
        if not api_key:
            raise ConfigError(f"Environment variable {options['api_key_env']} is not set")
    kwargs = {}
    if options.get("docs_url_template"):
        kwargs["docs_url_template"] = options["docs_url_template"]
    try:
        return OpenAIModelsFetcher(
            base_url=options.get("base_url"),
            api_key=api_key,
            model_ids=options.get("model_ids"),
            **kwargs
        )
    except openai.OpenAIError as e:
        raise ConfigError(f"Cannot create OpenAI models fetcher: {e}") from e


def build_registry(config: AppConfig) -> FetcherRegistry:
    """Create the provider -> fetcher routing table."""
    default = build_fetcher(config.default_fetcher) if config.default_fetcher else None
    registry = FetcherRegistry(default=default)
    for provider_id, fetcher_config in config.provider_fetchers.items():
        registry.register(provider_id, build_fetcher(fetcher_config))
    return registry


def build_publisher(config: AppConfig) -> Optional[PublishSink]:
    """Create the publish sink chain, or None when nothing is configured."""
    sinks = []
    if config.publish.marker_file:
        sinks.append(MarkerFilePublisher(config.publish.marker_file))
    if config.publish.command:
        sinks.append(CommandPublisher(config.publish.command, timeout=config.publish.command_timeout_s))
    if not sinks:
        return None
    if len(sinks) == 1:
        return sinks[0]
    return CompositePublisher(sinks)
