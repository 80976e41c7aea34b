"""Queue data models."""
import base64
import json
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Any, Optional


class StorageError(Exception):
    """A record could not be written to the spool."""


class CorruptRecordError(Exception):
    """A spooled record is missing, unreadable or undecodable."""

    def __init__(self, record_id: str, reason: str):
        super().__init__(f"Corrupt record {record_id}: {reason}")
        self.record_id = record_id
        self.reason = reason


def _drop_none(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None}


@dataclass(frozen=True)
class AppInfo:
    name: str
    bundle_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({"name": self.name, "bundleId": self.bundle_id})

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AppInfo":
        return cls(name=str(data["name"]), bundle_id=data.get("bundleId"))


@dataclass(frozen=True)
class Rect:
    x: int
    y: int
    w: int
    h: int

    def to_dict(self) -> Dict[str, Any]:
        return {"x": self.x, "y": self.y, "w": self.w, "h": self.h}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Rect":
        return cls(x=int(data["x"]), y=int(data["y"]), w=int(data["w"]), h=int(data["h"]))


@dataclass(frozen=True)
class WindowInfo:
    title: str
    id: int
    bounds: Rect

    def to_dict(self) -> Dict[str, Any]:
        return {"title": self.title, "id": self.id, "bounds": self.bounds.to_dict()}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WindowInfo":
        return cls(
            title=str(data["title"]),
            id=int(data["id"]),
            bounds=Rect.from_dict(data["bounds"]),
        )


@dataclass(frozen=True)
class Screenshot:
    mime: str  # "image/jpeg" or "image/png"
    data_base64: str

    def to_dict(self) -> Dict[str, Any]:
        return {"mime": self.mime, "dataBase64": self.data_base64}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Screenshot":
        return cls(mime=str(data["mime"]), data_base64=str(data["dataBase64"]))


@dataclass(frozen=True)
class AnalysisPayload:
    """Wire format sent to the analyzer; also the body of every spool file."""

    timestamp: str  # ISO 8601 with milliseconds
    app: AppInfo
    typed_text_chunk: str
    window: Optional[WindowInfo] = None
    screenshot: Optional[Screenshot] = None

    @classmethod
    def make(
        cls,
        typed_text: str,
        app_name: str,
        bundle_id: Optional[str] = None,
        window: Optional[WindowInfo] = None,
        screenshot_bytes: Optional[bytes] = None,
        screenshot_mime: str = "image/jpeg",
    ) -> "AnalysisPayload":
        """Build a payload stamped with the current UTC time."""
        shot = None
        if screenshot_bytes:
            shot = Screenshot(
                mime=screenshot_mime,
                data_base64=base64.b64encode(screenshot_bytes).decode("ascii"),
            )
        ts = datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
        return cls(
            timestamp=ts,
            app=AppInfo(name=app_name, bundle_id=bundle_id),
            typed_text_chunk=typed_text,
            window=window,
            screenshot=shot,
        )

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            "timestamp": self.timestamp,
            "app": self.app.to_dict(),
            "window": self.window.to_dict() if self.window else None,
            "typedTextChunk": self.typed_text_chunk,
            "screenshot": self.screenshot.to_dict() if self.screenshot else None,
        })

    def to_json(self) -> str:
        """Serialize with sorted keys so spool files diff cleanly."""
        return json.dumps(self.to_dict(), sort_keys=True, ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnalysisPayload":
        window = data.get("window")
        screenshot = data.get("screenshot")
        return cls(
            timestamp=str(data["timestamp"]),
            app=AppInfo.from_dict(data["app"]),
            typed_text_chunk=str(data["typedTextChunk"]),
            window=WindowInfo.from_dict(window) if window else None,
            screenshot=Screenshot.from_dict(screenshot) if screenshot else None,
        )

    @classmethod
    def from_json(cls, json_str: str) -> "AnalysisPayload":
        """Deserialize; raises ValueError/KeyError/TypeError on bad input."""
        data = json.loads(json_str)
        if not isinstance(data, dict):
            raise ValueError("payload must be a JSON object")
        return cls.from_dict(data)


def new_record_id() -> str:
    """`<unix-millis>_<uuid>`: lexical order equals creation order."""
    return f"{int(time.time() * 1000):013d}_{uuid.uuid4()}"


@dataclass(frozen=True)
class WorkItem:
    """One unit of captured context to be analyzed."""

    id: str
    payload: AnalysisPayload
    created_at: float = field(default_factory=time.time)

    @classmethod
    def create(cls, payload: AnalysisPayload) -> "WorkItem":
        """Factory method to create a WorkItem with a fresh sortable id."""
        return cls.restore(new_record_id(), payload)

    @classmethod
    def restore(cls, record_id: str, payload: AnalysisPayload) -> "WorkItem":
        """Rebuild an item read back from storage; creation time comes from the id."""
        try:
            created_at = int(record_id.split("_", 1)[0]) / 1000
        except ValueError:
            created_at = 0.0
        return cls(id=record_id, payload=payload, created_at=created_at)


@dataclass(frozen=True)
class EnqueueResult:
    record_id: str
    dropped_count: int = 0
