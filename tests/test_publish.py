"""
Unit tests for dataset-changed publish sinks.
"""

import json
import os
import sys
import tempfile
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from ai_model_sync.core.publish import CommandPublisher, CompositePublisher, MarkerFilePublisher, PublishError
from ai_model_sync.core.sync import OutcomeStatus, ProviderOutcome, RunReport


T0 = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def _report():
    return RunReport(
        outcomes=[
            ProviderOutcome("deepseek-r1", OutcomeStatus.UPDATED, model_id="deepseek-r1"),
            ProviderOutcome("amazon-nova", OutcomeStatus.UPDATED, model_id="amazon-nova"),
            ProviderOutcome("gpt-4o", OutcomeStatus.UNCHANGED, model_id="gpt-4o"),
        ],
        started_at=T0,
        finished_at=T0,
    )


class TestMarkerFilePublisher:
    """Test the marker file sink."""

    def test_writes_marker(self):
        """Verify the marker lists updated models and the change time."""
        with tempfile.TemporaryDirectory() as temp_dir:
            path = os.path.join(temp_dir, "signals", "dataset-changed.json")
            MarkerFilePublisher(path).notify(_report())

            with open(path, 'r', encoding='utf-8') as f:
                marker = json.load(f)
            assert marker == {
                "changedAt": T0.isoformat(),
                "updatedModelIds": ["amazon-nova", "deepseek-r1"],
            }

    def test_unwritable_marker(self):
        """Verify write failures become PublishError."""
        with tempfile.TemporaryDirectory() as temp_dir:
            blocker = os.path.join(temp_dir, "file")
            with open(blocker, 'w', encoding='utf-8') as f:
                f.write("not a directory")
            with pytest.raises(PublishError):
                MarkerFilePublisher(os.path.join(blocker, "marker.json")).notify(_report())


class TestCommandPublisher:
    """Test the build command sink."""

    def test_successful_command(self):
        """Verify a zero exit code is a successful publish."""
        CommandPublisher([sys.executable, "-c", "pass"]).notify(_report())

    def test_failing_command(self):
        """Verify a non-zero exit code raises with stderr."""
        publisher = CommandPublisher([sys.executable, "-c", "import sys; sys.stderr.write('boom'); sys.exit(3)"])
        with pytest.raises(PublishError, match="exited with 3: boom"):
            publisher.notify(_report())

    def test_missing_executable(self):
        """Verify an unrunnable command raises PublishError."""
        with pytest.raises(PublishError, match="failed to run"):
            CommandPublisher("definitely-not-a-real-command-xyz").notify(_report())

    def test_timeout(self):
        """Verify a hung command is stopped and reported."""
        publisher = CommandPublisher([sys.executable, "-c", "import time; time.sleep(10)"], timeout=0.2)
        with pytest.raises(PublishError, match="failed to run"):
            publisher.notify(_report())

    def test_string_command_is_split(self):
        """Verify shell-style strings are split into arguments."""
        assert CommandPublisher("npm run build -- --prod").command == ["npm", "run", "build", "--", "--prod"]

    def test_empty_command_rejected(self):
        """Verify an empty command is a construction error."""
        with pytest.raises(ValueError):
            CommandPublisher("   ")


class TestCompositePublisher:
    """Test chaining sinks."""

    def test_notifies_in_order(self):
        """Verify every sink is notified in order."""
        calls = []
        first, second = MagicMock(), MagicMock()
        first.notify.side_effect = lambda report: calls.append("first")
        second.notify.side_effect = lambda report: calls.append("second")

        CompositePublisher([first, second]).notify(_report())
        assert calls == ["first", "second"]

    def test_failure_stops_chain(self):
        """Verify the first failing sink stops later sinks."""
        first, second = MagicMock(), MagicMock()
        first.notify.side_effect = PublishError("marker failed")

        with pytest.raises(PublishError, match="marker failed"):
            CompositePublisher([first, second]).notify(_report())
        second.notify.assert_not_called()
