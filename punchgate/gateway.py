from __future__ import annotations

import logging
import signal
import threading
from dataclasses import dataclass
from pathlib import Path
from types import FrameType
from typing import Optional

import requests
from dotenv import load_dotenv

from .config import ConfigError, Settings, load_settings_from_env
from .device import DeviceClientFactory, zk_client_factory
from .directory import BranchDirectory, FileBranchDirectory, HttpBranchDirectory
from .fetch_cycle import FetchCycle
from .ingest import IngestionSender
from .observability import configure_logging
from .scheduler import FleetScheduler
from .watermarks import WatermarkStore

logger = logging.getLogger("punchgate.gateway")


@dataclass
class Gateway:
    settings: Settings
    watermarks: WatermarkStore
    sender: IngestionSender
    scheduler: FleetScheduler


def build_directory(settings: Settings, *, session: requests.Session | None = None) -> BranchDirectory:
    if settings.branches_url:
        return HttpBranchDirectory(
            settings.branches_url,
            session=session,
            api_key=settings.branches_api_key,
            timeout_s=settings.branches_timeout_s,
            default_port=settings.device_port,
        )
    if settings.branches_path is None:
        raise ConfigError("one of BRANCHES_URL or BRANCHES_PATH is required")
    return FileBranchDirectory(settings.branches_path, default_port=settings.device_port)


def build_gateway(
    settings: Settings,
    *,
    client_factory: Optional[DeviceClientFactory] = None,
    directory: Optional[BranchDirectory] = None,
    session: requests.Session | None = None,
) -> Gateway:
    watermarks = WatermarkStore()
    sender = IngestionSender(
        settings.punch_url,
        session=session,
        api_key=settings.ingest_api_key,
        timeout_s=settings.ingest_timeout_s,
    )
    cycle = FetchCycle(
        client_factory=client_factory
        or zk_client_factory(
            timeout_s=settings.device_timeout_s,
            password=settings.device_password,
            force_udp=settings.device_force_udp,
        ),
        sender=sender,
        watermarks=watermarks,
        advance_on_send_failure=settings.advance_on_send_failure,
        tenant_override=settings.tenant_id,
    )
    scheduler = FleetScheduler(
        directory=directory or build_directory(settings, session=session),
        cycle=cycle,
        interval_s=settings.poll_interval_s,
        max_workers=settings.max_workers,
    )
    return Gateway(settings=settings, watermarks=watermarks, sender=sender, scheduler=scheduler)


def _install_signal_handlers(stop: threading.Event) -> None:
    def _handle(signum: int, _frame: FrameType | None) -> None:
        logger.info("received signal %s; shutting down", signal.Signals(signum).name)
        stop.set()

    signal.signal(signal.SIGINT, _handle)
    signal.signal(signal.SIGTERM, _handle)


def main() -> None:
    # Load working-directory .env (if present), then package-local overrides.
    load_dotenv()
    load_dotenv(Path(__file__).resolve().parent / ".env")

    try:
        settings = load_settings_from_env()
    except ConfigError as exc:
        raise SystemExit(f"[punchgate] invalid config: {exc}") from exc

    level = getattr(logging, settings.log_level, logging.INFO)
    configure_logging(level=level, log_format=settings.log_format)

    gateway = build_gateway(settings)
    logger.info(
        "punchgate starting punch_url=%s directory=%s poll_interval_s=%s max_workers=%s advance_on_send_failure=%s",
        settings.punch_url,
        settings.branches_url or settings.branches_path,
        settings.poll_interval_s,
        settings.max_workers,
        settings.advance_on_send_failure,
    )

    stop = threading.Event()
    _install_signal_handlers(stop)
    try:
        gateway.scheduler.run_until(stop)
    finally:
        gateway.sender.close()


if __name__ == "__main__":
    main()
