"""
Configuration management and loading.

Handles the sync settings file and environment variables.
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from ai_model_sync.core.retry import RetryPolicy


CONFIG_ENV_VAR = "AI_MODEL_SYNC_CONFIG"
DEFAULT_CONFIG_PATH = "ai-model-sync.yaml"


class ConfigError(ValueError):
    """Raised when the configuration file is missing pieces or malformed."""


class StoreBackend(Enum):
    """Supported dataset store backends."""
    SQLITE = "sqlite"
    JSON = "json"


class FetcherType(Enum):
    """Supported provider fetcher adapters."""
    FILE = "file"
    HTTP = "http"
    OPENAI = "openai"


@dataclass(frozen=True)
class SyncConfig:
    """Options recognized by a sync run."""
    timeout_ms: int = 10000
    max_retries: int = 3
    retry_backoff_ms: int = 500
    max_concurrent_fetches: int = 4
    provider_ids: Tuple[str, ...] = ()

    def __post_init__(self):
        """Validate sync options are positive."""
        if self.timeout_ms <= 0:
            raise ConfigError("timeout_ms must be > 0")
        if self.max_retries < 1:
            raise ConfigError("max_retries must be >= 1")
        if self.retry_backoff_ms < 0:
            raise ConfigError("retry_backoff_ms cannot be negative")
        if self.max_concurrent_fetches < 1:
            raise ConfigError("max_concurrent_fetches must be >= 1")

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(max_attempts=self.max_retries, backoff_ms=self.retry_backoff_ms)


@dataclass(frozen=True)
class StoreConfig:
    """Where published records live."""
    backend: StoreBackend = StoreBackend.SQLITE
    path: str = "ai_model_sync.db"


@dataclass(frozen=True)
class FetcherConfig:
    """One fetcher adapter and its options."""
    type: FetcherType
    options: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PublishConfig:
    """Sinks for the dataset-changed signal."""
    marker_file: Optional[str] = None
    command: Optional[str] = None
    command_timeout_s: Optional[float] = None


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    file: Optional[str] = None


@dataclass(frozen=True)
class AppConfig:
    """Complete configuration file contents."""
    sync: SyncConfig = field(default_factory=SyncConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    default_fetcher: Optional[FetcherConfig] = None
    provider_fetchers: Dict[str, FetcherConfig] = field(default_factory=dict)
    publish: PublishConfig = field(default_factory=PublishConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


# Allowed option keys per fetcher type, and which of them are required.
_FETCHER_OPTIONS = {
    FetcherType.FILE: ({"directory"}, {"directory"}),
    FetcherType.HTTP: ({"url", "headers"}, {"url"}),
    FetcherType.OPENAI: ({"base_url", "api_key_env", "model_ids", "docs_url_template"}, set()),
}

_LOG_LEVELS = {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}


def resolve_config_path(path: Optional[str] = None) -> str:
    """Pick the config path: explicit argument, then env var, then default."""
    return path or os.environ.get(CONFIG_ENV_VAR) or DEFAULT_CONFIG_PATH


def load_config(path: str) -> AppConfig:
    """Load and validate sync configuration from YAML file.

    Strict validation ensures no silent misconfigurations: unknown keys are
    rejected rather than ignored.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated AppConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        ConfigError: If YAML is invalid or the configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ConfigError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ConfigError("Configuration must be a mapping")

    _reject_unknown(raw_config, {'sync', 'store', 'fetchers', 'publish', 'logging'}, "configuration")

    if 'sync' not in raw_config:
        raise ConfigError("Missing required 'sync' section")
    sync = _parse_sync(_section(raw_config, 'sync'))
    store = _parse_store(_section(raw_config, 'store'))
    default_fetcher, provider_fetchers = _parse_fetchers(_section(raw_config, 'fetchers'))
    publish = _parse_publish(_section(raw_config, 'publish'))
    logging_config = _parse_logging(_section(raw_config, 'logging'))

    unknown_providers = set(provider_fetchers) - set(sync.provider_ids)
    if unknown_providers:
        raise ConfigError(f"Fetchers configured for providers not in sync.provider_ids: {sorted(unknown_providers)}")
    if default_fetcher is None:
        unrouted = [p for p in sync.provider_ids if p not in provider_fetchers]
        if unrouted:
            raise ConfigError(f"No fetcher for providers {unrouted} and no 'fetchers.default'")

    return AppConfig(
        sync=sync,
        store=store,
        default_fetcher=default_fetcher,
        provider_fetchers=provider_fetchers,
        publish=publish,
        logging=logging_config,
    )


def _section(raw_config: Dict, name: str) -> Dict:
    data = raw_config.get(name)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"'{name}' must be a dictionary")
    return data


def _reject_unknown(data: Dict, allowed: set, path: str) -> None:
    unknown_keys = set(data.keys()) - allowed
    if unknown_keys:
        raise ConfigError(f"Unknown keys in {path}: {sorted(unknown_keys)}")


def _int_option(data: Dict, key: str, default: int, path: str) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"'{key}' in {path} must be an integer")
    return value


def _parse_sync(data: Dict) -> SyncConfig:
    """Parse and validate the sync section."""
    _reject_unknown(data, {'timeout_ms', 'max_retries', 'retry_backoff_ms',
                           'max_concurrent_fetches', 'provider_ids'}, "sync")

    provider_ids = data.get('provider_ids')
    if not provider_ids:
        raise ConfigError("Missing required 'provider_ids' in sync")
    if not isinstance(provider_ids, list) or not all(isinstance(p, str) and p.strip() for p in provider_ids):
        raise ConfigError("'provider_ids' in sync must be a list of non-empty strings")
    if len(set(provider_ids)) != len(provider_ids):
        raise ConfigError("'provider_ids' in sync contains duplicates")

    defaults = SyncConfig()
    return SyncConfig(
        timeout_ms=_int_option(data, 'timeout_ms', defaults.timeout_ms, "sync"),
        max_retries=_int_option(data, 'max_retries', defaults.max_retries, "sync"),
        retry_backoff_ms=_int_option(data, 'retry_backoff_ms', defaults.retry_backoff_ms, "sync"),
        max_concurrent_fetches=_int_option(data, 'max_concurrent_fetches', defaults.max_concurrent_fetches, "sync"),
        provider_ids=tuple(p.strip() for p in provider_ids),
    )


def _parse_store(data: Dict) -> StoreConfig:
    """Parse and validate the store section."""
    _reject_unknown(data, {'backend', 'path'}, "store")
    defaults = StoreConfig()

    backend_str = data.get('backend', defaults.backend.value)
    if not isinstance(backend_str, str):
        raise ConfigError("'backend' in store must be a string")
    try:
        backend = StoreBackend(backend_str.lower())
    except ValueError:
        valid_backends = [b.value for b in StoreBackend]
        raise ConfigError(f"'backend' in store must be one of: {valid_backends}")

    path = data.get('path', defaults.path)
    if not isinstance(path, str) or not path.strip():
        raise ConfigError("'path' in store must be a non-empty string")
    return StoreConfig(backend=backend, path=path)


def _parse_fetchers(data: Dict) -> Tuple[Optional[FetcherConfig], Dict[str, FetcherConfig]]:
    """Parse and validate the fetchers section."""
    _reject_unknown(data, {'default', 'providers'}, "fetchers")

    default = None
    if data.get('default') is not None:
        default = _parse_fetcher(data['default'], "fetchers.default")

    providers_data = data.get('providers') or {}
    if not isinstance(providers_data, dict):
        raise ConfigError("'providers' in fetchers must be a dictionary")

    providers = {}
    for provider_id, fetcher_data in providers_data.items():
        providers[provider_id] = _parse_fetcher(fetcher_data, f"fetchers.providers.{provider_id}")
    return default, providers


def _parse_fetcher(data: Any, path: str) -> FetcherConfig:
    if not isinstance(data, dict):
        raise ConfigError(f"'{path}' must be a dictionary")
    if 'type' not in data:
        raise ConfigError(f"Missing required 'type' in {path}")

    type_str = data['type']
    try:
        fetcher_type = FetcherType(str(type_str).lower())
    except ValueError:
        valid_types = [t.value for t in FetcherType]
        raise ConfigError(f"'type' in {path} must be one of: {valid_types}")

    options = {k: v for k, v in data.items() if k != 'type'}
    allowed, required = _FETCHER_OPTIONS[fetcher_type]
    _reject_unknown(options, allowed, path)
    missing = required - set(options)
    if missing:
        raise ConfigError(f"Missing required {sorted(missing)} in {path}")
    for key in ('headers', 'model_ids'):
        if key in options and not isinstance(options[key], dict):
            raise ConfigError(f"'{key}' in {path} must be a dictionary")
    return FetcherConfig(type=fetcher_type, options=options)


def _parse_publish(data: Dict) -> PublishConfig:
    """Parse and validate the publish section."""
    _reject_unknown(data, {'marker_file', 'command', 'command_timeout_s'}, "publish")
    for key in ('marker_file', 'command'):
        if data.get(key) is not None and (not isinstance(data[key], str) or not data[key].strip()):
            raise ConfigError(f"'{key}' in publish must be a non-empty string")

    timeout = data.get('command_timeout_s')
    if timeout is not None and (isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0):
        raise ConfigError("'command_timeout_s' in publish must be > 0")

    return PublishConfig(
        marker_file=data.get('marker_file'),
        command=data.get('command'),
        command_timeout_s=float(timeout) if timeout is not None else None,
    )


def _parse_logging(data: Dict) -> LoggingConfig:
    """Parse and validate the logging section."""
    _reject_unknown(data, {'level', 'file'}, "logging")
    level = str(data.get('level', "INFO")).upper()
    if level not in _LOG_LEVELS:
        raise ConfigError(f"'level' in logging must be one of: {sorted(_LOG_LEVELS)}")
    log_file = data.get('file')
    if log_file is not None and not isinstance(log_file, str):
        raise ConfigError("'file' in logging must be a string")
    return LoggingConfig(level=level, file=log_file)
