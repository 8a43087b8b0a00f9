from .device import (
    DeviceClient,
    DeviceConnectionError,
    DeviceDisconnectError,
    DeviceError,
    RecordRetrievalError,
    ZkDeviceClient,
)
from .directory import BranchDirectory, DirectoryError, FileBranchDirectory, HttpBranchDirectory
from .fetch_cycle import BranchOutcome, FetchCycle
from .ingest import IngestionSender, SendResult
from .models import Branch, PunchRecord
from .scheduler import FleetScheduler, PassSummary
from .watermarks import WatermarkStore

__all__ = [
    "Branch",
    "BranchDirectory",
    "BranchOutcome",
    "DeviceClient",
    "DeviceConnectionError",
    "DeviceDisconnectError",
    "DeviceError",
    "DirectoryError",
    "FetchCycle",
    "FileBranchDirectory",
    "FleetScheduler",
    "HttpBranchDirectory",
    "IngestionSender",
    "PassSummary",
    "PunchRecord",
    "RecordRetrievalError",
    "SendResult",
    "WatermarkStore",
    "ZkDeviceClient",
]
