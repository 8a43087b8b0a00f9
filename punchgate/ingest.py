from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Sequence

import requests

from .models import PunchRecord

logger = logging.getLogger("punchgate.ingest")


@dataclass(frozen=True)
class SendResult:
    ok: bool
    status_code: int | None = None
    error: str | None = None


def post_punches(
    session: requests.Session,
    url: str,
    punches: Sequence[Dict[str, Any]],
    tenant_id: str,
    *,
    api_key: str | None = None,
    timeout_s: float = 10.0,
) -> requests.Response:
    headers = {"Content-Type": "application/json"}
    if api_key:
        headers["X-API-Key"] = api_key
    return session.post(
        url,
        headers=headers,
        json={"punches": list(punches), "tenantId": tenant_id},
        timeout=timeout_s,
    )


class IngestionSender:
    """Forwards one batch of punches per call to the ingestion endpoint.

    There is no retry here; the next fleet pass is the only retry mechanism.

    ``requests.Session`` is not guaranteed to be thread-safe, so unless a
    session is passed in, every calling thread gets its own, created on first
    use and closed by :meth:`close`. A session that is passed in is used as-is
    from every thread.
    """

    def __init__(
        self,
        url: str,
        *,
        session: requests.Session | None = None,
        api_key: str | None = None,
        timeout_s: float = 10.0,
        session_factory: Callable[[], requests.Session] = requests.Session,
    ) -> None:
        self.url = url
        self.api_key = api_key
        self.timeout_s = timeout_s
        self._shared_session = session
        self._session_factory = session_factory
        self._local = threading.local()
        self._lock = threading.Lock()
        self._owned_sessions: List[requests.Session] = []

    def _session(self) -> requests.Session:
        if self._shared_session is not None:
            return self._shared_session
        session = getattr(self._local, "session", None)
        if session is None:
            session = self._session_factory()
            self._local.session = session
            with self._lock:
                self._owned_sessions.append(session)
        return session

    def send(self, records: Sequence[PunchRecord], tenant_id: str) -> SendResult:
        try:
            resp = post_punches(
                self._session(),
                self.url,
                [r.to_payload() for r in records],
                tenant_id,
                api_key=self.api_key,
                timeout_s=self.timeout_s,
            )
        except requests.RequestException as exc:
            logger.error("send to ingestion API failed for tenant %s: %r", tenant_id, exc)
            return SendResult(ok=False, error=repr(exc))

        if 200 <= resp.status_code < 300:
            logger.info("sent %s punches to the ingestion API for tenant %s", len(records), tenant_id)
            return SendResult(ok=True, status_code=resp.status_code)

        reason = f"API call failed with status: {resp.status_code} {resp.text[:200]}"
        logger.error("send to ingestion API failed for tenant %s: %s", tenant_id, reason)
        return SendResult(ok=False, status_code=resp.status_code, error=reason)

    def close(self) -> None:
        with self._lock:
            owned, self._owned_sessions = self._owned_sessions, []
        for session in owned:
            session.close()
        if self._shared_session is not None:
            self._shared_session.close()
