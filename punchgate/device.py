from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, List, Protocol

from zk import ZK
from zk.exception import ZKError

from .models import Branch, PunchRecord

logger = logging.getLogger("punchgate.device")


class DeviceError(RuntimeError):
    """Base class for terminal session failures."""


class DeviceConnectionError(DeviceError):
    """Raised when a terminal cannot be reached or refuses the session."""


class RecordRetrievalError(DeviceError):
    """Raised when attendance records cannot be read from a connected terminal."""


class DeviceDisconnectError(DeviceError):
    """Raised when closing a terminal session fails."""


class DeviceClient(Protocol):
    """One session against one terminal. Created fresh for each fetch cycle."""

    def connect(self) -> None: ...

    def fetch_records(self) -> List[PunchRecord]: ...

    def disconnect(self) -> None: ...


DeviceClientFactory = Callable[[Branch], DeviceClient]
ZkFactory = Callable[..., Any]


def _as_optional_int(v: Any) -> int | None:
    if isinstance(v, bool):
        return int(v)
    if isinstance(v, int):
        return v
    try:
        return int(str(v).strip())
    except (TypeError, ValueError):
        return None


def attendance_to_record(attendance: Any, *, address: str | None = None) -> PunchRecord:
    """Map a pyzk ``Attendance`` object onto a :class:`PunchRecord`."""

    ts = getattr(attendance, "timestamp", None)
    if not isinstance(ts, datetime):
        raise RecordRetrievalError(f"attendance record without a timestamp: {attendance!r}")
    return PunchRecord(
        timestamp=ts,
        user_id=str(getattr(attendance, "user_id", "") or ""),
        uid=_as_optional_int(getattr(attendance, "uid", None)),
        status=_as_optional_int(getattr(attendance, "status", None)),
        punch=_as_optional_int(getattr(attendance, "punch", None)),
        address=address,
    )


class ZkDeviceClient:
    """ZKTeco terminal session backed by the pyzk library."""

    def __init__(
        self,
        branch: Branch,
        *,
        timeout_s: float = 5.0,
        password: int = 0,
        force_udp: bool = False,
        omit_ping: bool = True,
        zk_factory: ZkFactory | None = None,
    ) -> None:
        self.branch = branch
        self.timeout_s = timeout_s
        self.password = password
        self.force_udp = force_udp
        self.omit_ping = omit_ping
        self._zk_factory = zk_factory or ZK
        self._conn: Any | None = None

    def connect(self) -> None:
        zk = self._zk_factory(
            self.branch.address,
            port=self.branch.port,
            timeout=max(1, int(round(self.timeout_s))),
            password=self.password,
            force_udp=self.force_udp,
            # pyzk otherwise shells out to the system ping before the TCP handshake.
            ommit_ping=self.omit_ping,
        )
        try:
            self._conn = zk.connect()
        except (ZKError, OSError) as exc:
            raise DeviceConnectionError(
                f"connect to {self.branch.address}:{self.branch.port} failed: {exc}"
            ) from exc

    def fetch_records(self) -> List[PunchRecord]:
        if self._conn is None:
            raise RecordRetrievalError("fetch_records called before connect")
        try:
            raw = self._conn.get_attendance() or []
        except (ZKError, OSError) as exc:
            raise RecordRetrievalError(f"get_attendance failed: {exc}") from exc

        records: List[PunchRecord] = []
        for attendance in raw:
            try:
                records.append(attendance_to_record(attendance, address=self.branch.address))
            except RecordRetrievalError as exc:
                logger.warning("skipping unreadable attendance record: %s", exc)
        return records

    def disconnect(self) -> None:
        conn, self._conn = self._conn, None
        if conn is None:
            return
        try:
            conn.disconnect()
        except (ZKError, OSError) as exc:
            raise DeviceDisconnectError(f"disconnect failed: {exc}") from exc


def zk_client_factory(*, timeout_s: float, password: int = 0, force_udp: bool = False) -> DeviceClientFactory:
    def _factory(branch: Branch) -> DeviceClient:
        return ZkDeviceClient(branch, timeout_s=timeout_s, password=password, force_udp=force_udp)

    return _factory
