from __future__ import annotations

from pathlib import Path
from typing import Any, List, Mapping, Protocol

import requests
import yaml

from .models import DEFAULT_DEVICE_PORT, Branch


class DirectoryError(RuntimeError):
    """Raised when the branch list cannot be obtained or is malformed."""


class BranchDirectory(Protocol):
    """Source of the branch list. Consulted once per fleet pass."""

    def list_branches(self) -> List[Branch]: ...


def _require_str(obj: Mapping[str, Any], *keys: str, origin: str) -> str:
    for key in keys:
        v = obj.get(key)
        if v is None:
            continue
        if isinstance(v, bool) or not isinstance(v, (str, int)):
            raise DirectoryError(f"{origin}: '{key}' must be a string")
        s = str(v).strip()
        if s:
            return s
    raise DirectoryError(f"{origin}: missing '{keys[0]}'")


def _parse_port(v: Any, *, default: int, origin: str) -> int:
    if v is None:
        return default
    if isinstance(v, bool):
        raise DirectoryError(f"{origin}: 'port' must be an int")
    try:
        port = int(v)
    except (TypeError, ValueError) as exc:
        raise DirectoryError(f"{origin}: 'port' must be an int") from exc
    if not 0 < port < 65536:
        raise DirectoryError(f"{origin}: 'port' out of range: {port}")
    return port


def parse_branches(payload: Any, *, origin: str, default_port: int = DEFAULT_DEVICE_PORT) -> List[Branch]:
    """Parse a branch list.

    Accepts either a bare list or an object with a ``branches`` list. Each entry
    needs an ``id`` and an ``ip`` (or ``address``); ``port`` and ``tenant_id``
    are optional.
    """

    if isinstance(payload, Mapping):
        payload = payload.get("branches")
    if payload is None:
        return []
    if not isinstance(payload, list):
        raise DirectoryError(f"{origin}: branch list must be a list")

    branches: List[Branch] = []
    seen: set[str] = set()
    for idx, item in enumerate(payload):
        where = f"{origin}[{idx}]"
        if not isinstance(item, Mapping):
            raise DirectoryError(f"{where}: branch must be an object")
        branch_id = _require_str(item, "id", origin=where)
        if branch_id in seen:
            raise DirectoryError(f"{where}: duplicate branch id '{branch_id}'")
        seen.add(branch_id)

        tenant_id: str | None = None
        if item.get("tenant_id") is not None or item.get("tenantId") is not None:
            tenant_id = _require_str(item, "tenant_id", "tenantId", origin=where)

        branches.append(
            Branch(
                id=branch_id,
                address=_require_str(item, "ip", "address", origin=where),
                port=_parse_port(item.get("port"), default=default_port, origin=where),
                tenant_id=tenant_id,
            )
        )
    return branches


class FileBranchDirectory:
    """Branch list from a YAML (or JSON) file, re-read on every call."""

    def __init__(self, path: Path, *, default_port: int = DEFAULT_DEVICE_PORT) -> None:
        self.path = path
        self.default_port = default_port

    def list_branches(self) -> List[Branch]:
        try:
            text = self.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise DirectoryError(f"cannot read branch file {self.path}: {exc}") from exc
        try:
            loaded = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise DirectoryError(f"failed to parse branch file {self.path}: {exc}") from exc
        return parse_branches(loaded, origin=str(self.path), default_port=self.default_port)


class HttpBranchDirectory:
    """Branch list from an HTTP endpoint returning JSON."""

    def __init__(
        self,
        url: str,
        *,
        session: requests.Session | None = None,
        api_key: str | None = None,
        timeout_s: float = 10.0,
        default_port: int = DEFAULT_DEVICE_PORT,
    ) -> None:
        self.url = url
        self.api_key = api_key
        self.timeout_s = timeout_s
        self.default_port = default_port
        self._session = session or requests.Session()

    def list_branches(self) -> List[Branch]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["X-API-Key"] = self.api_key
        try:
            resp = self._session.get(self.url, headers=headers, timeout=self.timeout_s)
        except requests.RequestException as exc:
            raise DirectoryError(f"branch directory request failed: {exc!r}") from exc

        if not 200 <= resp.status_code < 300:
            raise DirectoryError(f"branch directory returned {resp.status_code} {resp.text[:200]}")
        try:
            data = resp.json()
        except ValueError as exc:
            raise DirectoryError("branch directory response was not JSON") from exc
        return parse_branches(data, origin=self.url, default_port=self.default_port)
