from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict

DEFAULT_DEVICE_PORT = 4370


@dataclass(frozen=True)
class Branch:
    """One attendance terminal as reported by the branch directory."""

    id: str
    address: str
    port: int = DEFAULT_DEVICE_PORT
    tenant_id: str | None = None

    @property
    def tenant(self) -> str:
        return self.tenant_id or self.id


@dataclass(frozen=True)
class PunchRecord:
    """A single clock-in/out event read from a terminal."""

    timestamp: datetime
    user_id: str
    uid: int | None = None
    status: int | None = None
    punch: int | None = None
    address: str | None = None

    def to_payload(self) -> Dict[str, Any]:
        # Field names match what the ingestion API already accepts from terminals.
        return {
            "userSn": self.uid,
            "deviceUserId": self.user_id,
            "recordTime": self.timestamp.isoformat(),
            "status": self.status,
            "punch": self.punch,
            "ip": self.address,
        }
