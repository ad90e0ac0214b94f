"""Diagnostic event recording for conversations."""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

from pydantic import BaseModel, Field

from kubectl_agent.logging import get_logger

logger = get_logger("journal")


class Event(BaseModel):
    action: str
    payload: Any = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class Recorder(Protocol):
    def write(self, event: Event) -> None: ...

    def close(self) -> None: ...


class NoopRecorder:
    def write(self, event: Event) -> None:
        pass

    def close(self) -> None:
        pass


class LogRecorder:
    """Writes events to the debug log."""

    def write(self, event: Event) -> None:
        logger.debug(f"{event.action}: {_encode_payload(event.payload)}")

    def close(self) -> None:
        pass


class FileRecorder:
    """Appends events to a file, one JSON object per line."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._file = self.path.open("a", encoding="utf-8")

    def write(self, event: Event) -> None:
        record = {
            "timestamp": event.timestamp.isoformat(),
            "action": event.action,
            "payload": json.loads(_encode_payload(event.payload)),
        }
        self._file.write(json.dumps(record) + "\n")
        self._file.flush()

    def close(self) -> None:
        if not self._file.closed:
            self._file.close()


def _default(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if hasattr(value, "__dict__"):
        return {k: v for k, v in vars(value).items() if not k.startswith("_")}
    return repr(value)


def _encode_payload(payload: Any) -> str:
    return json.dumps(payload, default=_default)
