"""
Record Service API Module
Provides connectors for the clinic record service
"""

from .base_connector import BaseAPIConnector, APIConfig
from .config_manager import APIConfigManager

from .record_connector import (
    RecordServiceConnector,
    MockRecordConnector
)

__all__ = [
    # Base classes
    "BaseAPIConnector",
    "APIConfig",
    "APIConfigManager",

    # Record connectors
    "RecordServiceConnector",
    "MockRecordConnector",
]
