"""VolumeAnalyzer package initialisation."""

__all__ = [
    "core",
    "drivers",
    "filesystems",
    "metadata",
    "reporting",
    "shared",
]
