"""
Smoke tests that every public module imports cleanly.
"""

import importlib

import pytest


MODULES = [
    "ai_model_sync.cli.main",
    "ai_model_sync.config.factory",
    "ai_model_sync.config.loader",
    "ai_model_sync.core.cancellation",
    "ai_model_sync.core.change_detector",
    "ai_model_sync.core.logger",
    "ai_model_sync.core.pricing",
    "ai_model_sync.core.publish",
    "ai_model_sync.core.retry",
    "ai_model_sync.core.sync",
    "ai_model_sync.core.validator",
    "ai_model_sync.fetchers",
    "ai_model_sync.storage.export",
    "ai_model_sync.storage.json_store",
    "ai_model_sync.storage.repository",
]


@pytest.mark.parametrize("module_name", MODULES)
def test_module_imports(module_name):
    assert importlib.import_module(module_name) is not None


def test_fetchers_public_api():
    import ai_model_sync.fetchers as fetchers

    for name in fetchers.__all__:
        assert hasattr(fetchers, name), name
