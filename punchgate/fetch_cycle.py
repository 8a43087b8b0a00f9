from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Literal, Optional

from .device import (
    DeviceClient,
    DeviceClientFactory,
    DeviceConnectionError,
    RecordRetrievalError,
)
from .ingest import IngestionSender
from .models import Branch, PunchRecord
from .observability import branch_context
from .watermarks import WatermarkStore

logger = logging.getLogger("punchgate.fetch")

OutcomeStatus = Literal[
    "forwarded",
    "no_new_records",
    "connect_failed",
    "fetch_failed",
    "send_failed",
    "error",
]


@dataclass(frozen=True)
class BranchOutcome:
    branch_id: str
    status: OutcomeStatus
    fetched: int = 0
    forwarded: int = 0
    watermark: Optional[datetime] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status in {"forwarded", "no_new_records"}


def select_new_records(records: List[PunchRecord], watermark: Optional[datetime]) -> List[PunchRecord]:
    """Records strictly newer than ``watermark``; everything when there is none yet."""

    if watermark is None:
        return list(records)
    return [r for r in records if r.timestamp > watermark]


class FetchCycle:
    """Connect, read, dedupe, forward and disconnect for a single branch.

    Nothing raised while handling one branch leaves :meth:`run`; failures are
    logged and reported through the returned :class:`BranchOutcome`.

    By default the watermark only moves after the ingestion API confirmed the
    batch, so a failed send is retried on the next pass. With
    ``advance_on_send_failure`` the watermark moves regardless and a failed
    batch is dropped.
    """

    def __init__(
        self,
        *,
        client_factory: DeviceClientFactory,
        sender: IngestionSender,
        watermarks: WatermarkStore,
        advance_on_send_failure: bool = False,
        tenant_override: str | None = None,
    ) -> None:
        self.client_factory = client_factory
        self.sender = sender
        self.watermarks = watermarks
        self.advance_on_send_failure = advance_on_send_failure
        self.tenant_override = tenant_override

    def run(self, branch: Branch) -> BranchOutcome:
        with branch_context(branch.id):
            try:
                return self._run(branch)
            except Exception as exc:
                logger.exception("unexpected error for branch %s (%s)", branch.id, branch.address)
                return BranchOutcome(
                    branch_id=branch.id,
                    status="error",
                    watermark=self.watermarks.get(branch.id),
                    error=repr(exc),
                )

    def _run(self, branch: Branch) -> BranchOutcome:
        client = self.client_factory(branch)
        try:
            client.connect()
        except DeviceConnectionError as exc:
            logger.error("cannot connect to branch %s (%s): %s", branch.id, branch.address, exc)
            return BranchOutcome(
                branch_id=branch.id,
                status="connect_failed",
                watermark=self.watermarks.get(branch.id),
                error=str(exc),
            )

        try:
            return self._forward_new_records(branch, client)
        finally:
            _close_quietly(client, branch)

    def _forward_new_records(self, branch: Branch, client: DeviceClient) -> BranchOutcome:
        try:
            records = client.fetch_records()
        except RecordRetrievalError as exc:
            logger.error("cannot read punches from branch %s (%s): %s", branch.id, branch.address, exc)
            return BranchOutcome(
                branch_id=branch.id,
                status="fetch_failed",
                watermark=self.watermarks.get(branch.id),
                error=str(exc),
            )

        current = self.watermarks.get(branch.id)
        new_records = select_new_records(records, current)

        if not new_records:
            logger.info("no new punches for branch %s", branch.id)
            return BranchOutcome(
                branch_id=branch.id,
                status="no_new_records",
                fetched=len(records),
                watermark=current,
            )

        # Device order is not trusted to be chronological.
        newest = max(r.timestamp for r in new_records)
        tenant = self.tenant_override or branch.tenant
        logger.info("%s new punches for branch %s (tenant=%s)", len(new_records), branch.id, tenant)

        result = self.sender.send(new_records, tenant)

        if result.ok or self.advance_on_send_failure:
            self.watermarks.set(branch.id, newest)

        if not result.ok:
            return BranchOutcome(
                branch_id=branch.id,
                status="send_failed",
                fetched=len(records),
                watermark=self.watermarks.get(branch.id),
                error=result.error,
            )

        return BranchOutcome(
            branch_id=branch.id,
            status="forwarded",
            fetched=len(records),
            forwarded=len(new_records),
            watermark=newest,
        )


def _close_quietly(client: DeviceClient, branch: Branch) -> None:
    try:
        client.disconnect()
    except Exception as exc:
        logger.warning("disconnect from branch %s (%s) failed: %r", branch.id, branch.address, exc)
