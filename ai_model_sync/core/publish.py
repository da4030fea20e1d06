"""
Dataset-changed signal for the external build/deploy step.

Sinks are only notified after a run that updated at least one record.
"""

import shlex
import subprocess
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Protocol, Sequence, Union

from loguru import logger

from ai_model_sync.storage.json_store import write_json_atomic

if TYPE_CHECKING:
    from .sync import RunReport


class PublishError(Exception):
    """Raised when a publish sink fails to deliver the signal."""


class PublishSink(Protocol):
    def notify(self, report: "RunReport") -> None: ...


class MarkerFilePublisher:
    """Writes a JSON marker the build step watches for."""

    def __init__(self, path: str):
        self.path = Path(path)

    def notify(self, report: "RunReport") -> None:
        document = {
            "changedAt": report.finished_at.isoformat() if report.finished_at else None,
            "updatedModelIds": report.updated_model_ids,
        }
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            write_json_atomic(self.path, document)
        except OSError as e:
            raise PublishError(f"Cannot write publish marker {self.path}: {e}") from e
        logger.info(f"Wrote publish marker {self.path}")


class CommandPublisher:
    """Runs a build/deploy command, e.g. the static-site build."""

    def __init__(self, command: Union[str, Sequence[str]], timeout: Optional[float] = None, cwd: Optional[str] = None):
        self.command = shlex.split(command) if isinstance(command, str) else list(command)
        if not self.command:
            raise ValueError("command is required and cannot be empty")
        self.timeout = timeout
        self.cwd = cwd

    def notify(self, report: "RunReport") -> None:
        logger.info(f"Running publish command: {' '.join(self.command)}")
        try:
            completed = subprocess.run(
                self.command,
                cwd=self.cwd,
                timeout=self.timeout,
                capture_output=True,
                text=True,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise PublishError(f"Publish command failed to run: {e}") from e
        if completed.returncode != 0:
            raise PublishError(
                f"Publish command exited with {completed.returncode}: {completed.stderr.strip()}"
            )


class CompositePublisher:
    """Notifies several sinks in order; the first failure stops the chain."""

    def __init__(self, sinks: Sequence[PublishSink]):
        self.sinks = list(sinks)

    def notify(self, report: "RunReport") -> None:
        for sink in self.sinks:
            sink.notify(report)
