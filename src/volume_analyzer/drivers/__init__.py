"""Adaptery źródeł sektorów i dostawców partycji."""

from .base import (
    DataSourceDriver,
    DriverCapabilities,
    DriverError,
    PartitionProvider,
    SectorSource,
    WholeDevicePartitionProvider,
    whole_device_partition,
)
from .image import FileSectorSource, MemorySectorSource, RawImageDriver

__all__ = [
	"DataSourceDriver",
	"DriverCapabilities",
	"DriverError",
	"PartitionProvider",
	"SectorSource",
	"WholeDevicePartitionProvider",
	"whole_device_partition",
	"FileSectorSource",
	"MemorySectorSource",
	"RawImageDriver",
]

try:  # pragma: no cover - zależne od obecności pytsk3
    from .tsk import TskImageDriver, TskPartitionProvider, TskSectorSource

    __all__.extend(["TskImageDriver", "TskPartitionProvider", "TskSectorSource"])
except ImportError:  # pragma: no cover - środowisko bez pytsk3
    TskImageDriver = None  # type: ignore[assignment]
    TskPartitionProvider = None  # type: ignore[assignment]
    TskSectorSource = None  # type: ignore[assignment]
