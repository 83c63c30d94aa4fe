"""
Typed records exchanged between the record service, the mirror and callers.
"""

from .patient import (
    Sex,
    Patient,
    Visit,
    VisitFile,
    VisitDownload,
    PatientFields,
    PatientUpdate,
    NewVisit,
    UNSET,
    UPDATABLE_FIELDS,
    REQUIRED_FIELDS,
    utc_now_iso,
)

__all__ = [
    "Sex",
    "Patient",
    "Visit",
    "VisitFile",
    "VisitDownload",
    "PatientFields",
    "PatientUpdate",
    "NewVisit",
    "UNSET",
    "UPDATABLE_FIELDS",
    "REQUIRED_FIELDS",
    "utc_now_iso",
]
