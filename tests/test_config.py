"""
Unit tests for configuration loading and validation.

Tests strict validation, error handling and component building.
"""

import os
import shutil
import tempfile

import pytest
import yaml

from ai_model_sync.config.factory import build_fetcher, build_publisher, build_registry, build_store
from ai_model_sync.config.loader import (
    CONFIG_ENV_VAR,
    DEFAULT_CONFIG_PATH,
    ConfigError,
    FetcherConfig,
    FetcherType,
    StoreBackend,
    SyncConfig,
    load_config,
    resolve_config_path,
)
from ai_model_sync.core.publish import CommandPublisher, CompositePublisher, MarkerFilePublisher
from ai_model_sync.fetchers import FetcherRegistry, FileFetcher, HttpJsonFetcher, OpenAIModelsFetcher
from ai_model_sync.storage.json_store import JsonDirectoryStore
from ai_model_sync.storage.repository import SqliteDatasetStore


def _base_config(**sections):
    config = {
        "sync": {"provider_ids": ["amazon-nova", "deepseek-r1"]},
        "fetchers": {"default": {"type": "file", "directory": "providers"}},
    }
    config.update(sections)
    return config


class TestConfigLoading:
    """Test configuration loading and validation."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()

    def teardown_method(self):
        """Clean up test environment."""
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _write_config(self, config_data, filename: str = "config.yaml") -> str:
        """Write configuration data to temporary file."""
        config_path = os.path.join(self.temp_dir, filename)
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump(config_data, f)
        return config_path

    def test_valid_config_loads_correctly(self):
        """Test that a full configuration loads correctly."""
        config_data = {
            "sync": {
                "timeout_ms": 2000,
                "max_retries": 5,
                "retry_backoff_ms": 100,
                "max_concurrent_fetches": 8,
                "provider_ids": ["amazon-nova", "deepseek-r1", "gpt-4o"],
            },
            "store": {"backend": "json", "path": "site/data/models"},
            "fetchers": {
                "default": {"type": "file", "directory": "providers"},
                "providers": {
                    "gpt-4o": {"type": "http", "url": "https://api.example.com/{provider_id}"},
                },
            },
            "publish": {"marker_file": "dataset.changed", "command": "make site", "command_timeout_s": 60},
            "logging": {"level": "debug", "file": "sync.log"},
        }

        config = load_config(self._write_config(config_data))

        assert config.sync.timeout_ms == 2000
        assert config.sync.timeout_seconds == 2.0
        assert config.sync.max_retries == 5
        assert config.sync.retry_backoff_ms == 100
        assert config.sync.max_concurrent_fetches == 8
        assert config.sync.provider_ids == ("amazon-nova", "deepseek-r1", "gpt-4o")

        assert config.store.backend == StoreBackend.JSON
        assert config.store.path == "site/data/models"

        assert config.default_fetcher == FetcherConfig(FetcherType.FILE, {"directory": "providers"})
        assert config.provider_fetchers["gpt-4o"].type == FetcherType.HTTP

        assert config.publish.marker_file == "dataset.changed"
        assert config.publish.command == "make site"
        assert config.publish.command_timeout_s == 60.0

        assert config.logging.level == "DEBUG"
        assert config.logging.file == "sync.log"

    def test_defaults_applied(self):
        """Test that omitted options fall back to defaults."""
        config = load_config(self._write_config(_base_config()))

        assert config.sync.timeout_ms == 10000
        assert config.sync.max_retries == 3
        assert config.sync.retry_backoff_ms == 500
        assert config.sync.max_concurrent_fetches == 4
        assert config.store.backend == StoreBackend.SQLITE
        assert config.store.path == "ai_model_sync.db"
        assert config.publish.marker_file is None
        assert config.logging.level == "INFO"

    def test_retry_policy_from_sync_config(self):
        """Test that max_retries maps to total attempts."""
        config = load_config(self._write_config(_base_config()))
        policy = config.sync.retry_policy()
        assert policy.max_attempts == 3
        assert policy.backoff_ms == 500

    def test_file_not_found(self):
        """Test that missing config file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError, match="Config file not found"):
            load_config(os.path.join(self.temp_dir, "nonexistent.yaml"))

    def test_invalid_yaml(self):
        """Test that invalid YAML raises ConfigError."""
        config_path = os.path.join(self.temp_dir, "invalid.yaml")
        with open(config_path, 'w', encoding='utf-8') as f:
            f.write("sync: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(config_path)

    def test_empty_config(self):
        """Test that empty config raises ConfigError."""
        config_path = os.path.join(self.temp_dir, "empty.yaml")
        with open(config_path, 'w', encoding='utf-8') as f:
            f.write("")
        with pytest.raises(ConfigError, match="empty"):
            load_config(config_path)

    def test_non_mapping_config(self):
        """Test that a top-level list is rejected."""
        with pytest.raises(ConfigError, match="mapping"):
            load_config(self._write_config(["sync"]))

    def test_unknown_top_level_key(self):
        """Test that unknown keys raise ConfigError."""
        with pytest.raises(ConfigError, match="Unknown keys in configuration"):
            load_config(self._write_config(_base_config(budget={"daily": 10})))

    def test_missing_sync_section(self):
        """Test that the sync section is required."""
        config_data = _base_config()
        del config_data["sync"]
        with pytest.raises(ConfigError, match="Missing required 'sync' section"):
            load_config(self._write_config(config_data))

    def test_unknown_sync_key(self):
        """Test that typos in sync options are caught."""
        config_data = _base_config(sync={"provider_ids": ["a"], "timeout": 5})
        with pytest.raises(ConfigError, match="Unknown keys in sync"):
            load_config(self._write_config(config_data))

    def test_provider_ids_required(self):
        """Test that an empty provider list is rejected."""
        with pytest.raises(ConfigError, match="provider_ids"):
            load_config(self._write_config(_base_config(sync={"provider_ids": []})))

    def test_provider_ids_must_be_strings(self):
        """Test that provider ids must be non-empty strings."""
        with pytest.raises(ConfigError, match="list of non-empty strings"):
            load_config(self._write_config(_base_config(sync={"provider_ids": ["a", 3]})))

    def test_duplicate_provider_ids(self):
        """Test that duplicate provider ids are rejected."""
        with pytest.raises(ConfigError, match="duplicates"):
            load_config(self._write_config(_base_config(sync={"provider_ids": ["a", "a"]})))

    def test_non_positive_options(self):
        """Test that non-positive numeric options are rejected."""
        for key in ("timeout_ms", "max_retries", "max_concurrent_fetches"):
            config_data = _base_config(sync={"provider_ids": ["a"], key: 0})
            with pytest.raises(ConfigError):
                load_config(self._write_config(config_data))

    def test_non_integer_options(self):
        """Test that string and boolean numeric options are rejected."""
        for value in ("10", True, 1.5):
            config_data = _base_config(sync={"provider_ids": ["a"], "timeout_ms": value})
            with pytest.raises(ConfigError, match="must be an integer"):
                load_config(self._write_config(config_data))

    def test_invalid_store_backend(self):
        """Test that unknown store backends are rejected."""
        with pytest.raises(ConfigError, match="'backend' in store must be one of"):
            load_config(self._write_config(_base_config(store={"backend": "postgres"})))

    def test_fetcher_type_required(self):
        """Test that every fetcher names its type."""
        config_data = _base_config(fetchers={"default": {"directory": "providers"}})
        with pytest.raises(ConfigError, match="Missing required 'type'"):
            load_config(self._write_config(config_data))

    def test_invalid_fetcher_type(self):
        """Test that unknown fetcher types are rejected."""
        config_data = _base_config(fetchers={"default": {"type": "ftp"}})
        with pytest.raises(ConfigError, match="'type' in fetchers.default must be one of"):
            load_config(self._write_config(config_data))

    def test_missing_fetcher_option(self):
        """Test that required fetcher options are enforced."""
        config_data = _base_config(fetchers={"default": {"type": "http"}})
        with pytest.raises(ConfigError, match="url"):
            load_config(self._write_config(config_data))

    def test_unknown_fetcher_option(self):
        """Test that fetcher options are checked per type."""
        config_data = _base_config(fetchers={"default": {"type": "file", "directory": "p", "url": "x"}})
        with pytest.raises(ConfigError, match="Unknown keys in fetchers.default"):
            load_config(self._write_config(config_data))

    def test_fetcher_for_unknown_provider(self):
        """Test that routes for unlisted providers are rejected."""
        config_data = _base_config(fetchers={
            "default": {"type": "file", "directory": "p"},
            "providers": {"gpt-4o": {"type": "file", "directory": "q"}},
        })
        with pytest.raises(ConfigError, match="not in sync.provider_ids"):
            load_config(self._write_config(config_data))

    def test_unrouted_provider_without_default(self):
        """Test that every provider must resolve to a fetcher."""
        config_data = _base_config(fetchers={
            "providers": {"amazon-nova": {"type": "file", "directory": "p"}},
        })
        with pytest.raises(ConfigError, match="deepseek-r1"):
            load_config(self._write_config(config_data))

    def test_invalid_publish_timeout(self):
        """Test that publish command timeouts must be positive."""
        config_data = _base_config(publish={"command": "true", "command_timeout_s": 0})
        with pytest.raises(ConfigError, match="command_timeout_s"):
            load_config(self._write_config(config_data))

    def test_invalid_log_level(self):
        """Test that unknown log levels are rejected."""
        with pytest.raises(ConfigError, match="'level' in logging"):
            load_config(self._write_config(_base_config(logging={"level": "LOUD"})))


class TestSyncConfig:
    """Test SyncConfig validation outside the loader."""

    def test_negative_backoff_rejected(self):
        """Test that negative backoff is rejected."""
        with pytest.raises(ConfigError):
            SyncConfig(retry_backoff_ms=-1)

    def test_zero_backoff_allowed(self):
        """Test that zero backoff is allowed."""
        assert SyncConfig(retry_backoff_ms=0).retry_policy().backoff_ms == 0


class TestConfigPathResolution:
    """Test config path precedence."""

    def test_explicit_path_wins(self, monkeypatch):
        monkeypatch.setenv(CONFIG_ENV_VAR, "from-env.yaml")
        assert resolve_config_path("explicit.yaml") == "explicit.yaml"

    def test_env_var_used(self, monkeypatch):
        monkeypatch.setenv(CONFIG_ENV_VAR, "from-env.yaml")
        assert resolve_config_path() == "from-env.yaml"

    def test_default_path(self, monkeypatch):
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
        assert resolve_config_path() == DEFAULT_CONFIG_PATH


class TestFactory:
    """Test building runtime components from configuration."""

    def setup_method(self):
        self.temp_dir = tempfile.mkdtemp()

    def teardown_method(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _load(self, config_data):
        config_path = os.path.join(self.temp_dir, "config.yaml")
        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump(config_data, f)
        return load_config(config_path)

    def test_build_store_backends(self):
        """Test that each backend builds its store class."""
        sqlite_config = self._load(_base_config())
        json_config = self._load(_base_config(store={"backend": "json", "path": "models"}))

        assert isinstance(build_store(sqlite_config.store), SqliteDatasetStore)
        assert isinstance(build_store(json_config.store), JsonDirectoryStore)

    def test_build_registry_routes_providers(self):
        """Test that per-provider fetchers override the default."""
        config = self._load(_base_config(fetchers={
            "default": {"type": "file", "directory": "providers"},
            "providers": {
                "deepseek-r1": {
                    "type": "http",
                    "url": "https://api.example.com/{provider_id}",
                    "headers": {"Accept": "application/json"},
                },
            },
        }))
        registry = build_registry(config)

        assert isinstance(registry, FetcherRegistry)
        assert isinstance(registry.resolve("amazon-nova"), FileFetcher)
        http_fetcher = registry.resolve("deepseek-r1")
        assert isinstance(http_fetcher, HttpJsonFetcher)
        assert http_fetcher.headers == {"Accept": "application/json"}

    def test_build_openai_fetcher(self, monkeypatch):
        """Test that the OpenAI fetcher reads its key from the environment."""
        monkeypatch.setenv("TEST_MODELS_API_KEY", "sk-test")
        fetcher = build_fetcher(FetcherConfig(FetcherType.OPENAI, {
            "base_url": "https://openrouter.ai/api/v1",
            "api_key_env": "TEST_MODELS_API_KEY",
            "model_ids": {"amazon-nova": "amazon/nova-pro-v1"},
        }))
        assert isinstance(fetcher, OpenAIModelsFetcher)
        assert fetcher.model_ids == {"amazon-nova": "amazon/nova-pro-v1"}

    def test_build_openai_fetcher_missing_key(self, monkeypatch):
        """Test that an unset API key variable is a configuration error."""
        monkeypatch.delenv("TEST_MODELS_API_KEY", raising=False)
        with pytest.raises(ConfigError, match="TEST_MODELS_API_KEY"):
            build_fetcher(FetcherConfig(FetcherType.OPENAI, {"api_key_env": "TEST_MODELS_API_KEY"}))

    def test_build_publisher_none(self):
        """Test that no publish section means no publisher."""
        assert build_publisher(self._load(_base_config())) is None

    def test_build_publisher_single(self):
        """Test that a single sink is returned directly."""
        publisher = build_publisher(self._load(_base_config(publish={"marker_file": "changed.json"})))
        assert isinstance(publisher, MarkerFilePublisher)

    def test_build_publisher_composite(self):
        """Test that multiple sinks are chained."""
        config = self._load(_base_config(publish={"marker_file": "changed.json", "command": "make site"}))
        publisher = build_publisher(config)
        assert isinstance(publisher, CompositePublisher)
        assert [type(s) for s in publisher.sinks] == [MarkerFilePublisher, CommandPublisher]
