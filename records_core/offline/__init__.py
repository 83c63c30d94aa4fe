# =============================================================================
# records_core/offline/__init__.py
# Offline Fallback Layer for Clinic Records
# =============================================================================
"""
Offline fallback module.

Keeps the patient -> visit -> image hierarchy usable when the record service
cannot be reached.

Architecture:
------------
    PatientStore  (single API, callers use this only)
        |-- record service connector   (remote attempt first)
        |-- in-memory mirror           (local equivalent on failure)
        |-- LocalDatabase              (durable copy of the mirror)
        `-- ConnectionManager          (reachability from call outcomes)

Usage:
------
from records_core.offline import build_patient_store

store = build_patient_store()
store.search_patients("fracture")
"""

from records_core.offline.connection_manager import (
    ConnectionManager,
    ConnectionState,
    ConnectionStatus,
)
from records_core.offline.local_database import LocalDatabase
from records_core.offline.patient_store import PatientStore, build_patient_store
from records_core.offline.search import (
    PatientFilter,
    SORT_KEYS,
    apply_filters,
    last_visit_date,
    matches_query,
    patients_to_dataframe,
    search_mirror,
    text_matches,
)

__all__ = [
    # Store
    "PatientStore",
    "build_patient_store",
    # Connection
    "ConnectionManager",
    "ConnectionState",
    "ConnectionStatus",
    # Durable cache
    "LocalDatabase",
    # Search & filters
    "PatientFilter",
    "SORT_KEYS",
    "apply_filters",
    "last_visit_date",
    "matches_query",
    "patients_to_dataframe",
    "search_mirror",
    "text_matches",
]
