"""
Shared fixtures for AI Model Sync tests.
"""

from datetime import datetime, timezone

import pytest

from ai_model_sync.core.validator import validate


T0 = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_payload():
    """Factory for valid raw provider payloads with optional overrides."""
    def _make(**overrides):
        payload = {
            "displayName": "Amazon Nova Pro",
            "version": "v1",
            "contextWindowTokens": 300000,
            "pricing": {"input": 0.8, "output": 3.2},
            "docsUrl": "https://example.com/nova",
        }
        payload.update(overrides)
        return payload
    return _make


@pytest.fixture
def make_record(make_payload):
    """Factory for validated records, verified at T0 unless overridden."""
    def _make(model_id="amazon-nova", verified_at=T0, **overrides):
        return validate(make_payload(**overrides), model_id=model_id, verified_at=verified_at)
    return _make
