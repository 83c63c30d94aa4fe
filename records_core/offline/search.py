# =============================================================================
# records_core/offline/search.py
# Search, Filter and Summary Helpers over the Patient Mirror
# =============================================================================
"""
Matching rules shared by the remote search fallback and the mock record
service, plus the list filters and tabular summary used by callers.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Iterable, List, Optional, Union

import pandas as pd

from records_core.models import Patient, Sex

SORT_KEYS = ("name", "age", "recent")


def text_matches(query: str, *values: Optional[str]) -> bool:
    """True if any non-empty value contains the query, ignoring case."""
    needle = query.lower()
    return any(value and needle in str(value).lower() for value in values)


def matches_query(patient: Patient, query: str) -> bool:
    """Name, diagnosis or notes contains the query, case-insensitively."""
    return text_matches(query, patient.name, patient.diagnosis, patient.notes)


def search_mirror(patients: Iterable[Patient], query: str) -> List[Patient]:
    """
    Local equivalent of the record service search.

    An empty or whitespace-only query matches nothing.
    """
    if not query or not query.strip():
        return []
    return [p for p in patients if matches_query(p, query)]


@dataclass
class PatientFilter:
    """List filters: sex, inclusive age bounds and ordering."""
    sex: Optional[Union[Sex, str]] = None
    age_min: Optional[float] = None
    age_max: Optional[float] = None
    sort_by: Optional[str] = "name"

    def __post_init__(self):
        if self.sort_by is not None and self.sort_by not in SORT_KEYS:
            raise ValueError(f"sort_by must be one of {SORT_KEYS}, got {self.sort_by!r}")


def _sex_value(sex) -> Optional[str]:
    return sex.value if isinstance(sex, Sex) else sex


def apply_filters(patients: Iterable[Patient], criteria: Optional[PatientFilter]) -> List[Patient]:
    """Filter by sex and age range, then order by name, age or most recent."""
    results = list(patients)
    if criteria is None:
        return results

    if criteria.sex is not None:
        wanted = _sex_value(criteria.sex)
        results = [p for p in results if _sex_value(p.sex) == wanted]

    if criteria.age_min is not None:
        results = [p for p in results if p.age is not None and p.age >= criteria.age_min]

    if criteria.age_max is not None:
        results = [p for p in results if p.age is not None and p.age <= criteria.age_max]

    if criteria.sort_by == "name":
        results.sort(key=lambda p: (p.name or "").casefold())
    elif criteria.sort_by == "age":
        results.sort(key=lambda p: p.age if p.age is not None else float("inf"))
    elif criteria.sort_by == "recent":
        results.sort(key=lambda p: p.created_at or "", reverse=True)

    return results


def last_visit_date(patient: Patient) -> Optional[str]:
    """Date of the most recently entered visit, else the creation time."""
    if patient.visits:
        return patient.visits[-1].date
    return patient.created_at


def patients_to_dataframe(patients: Iterable[Patient]) -> pd.DataFrame:
    """
    One summary row per patient.

    Columns: id, name, age, sex, contact, diagnosis, notes, created_at,
    visit_count, image_count, xray_pending, last_visit
    """
    columns = [
        "id", "name", "age", "sex", "contact", "diagnosis", "notes",
        "created_at", "visit_count", "image_count", "xray_pending", "last_visit",
    ]

    rows = [
        {
            "id": p.id,
            "name": p.name,
            "age": p.age,
            "sex": _sex_value(p.sex),
            "contact": p.contact,
            "diagnosis": p.diagnosis,
            "notes": p.notes,
            "created_at": p.created_at,
            "visit_count": len(p.visits),
            "image_count": sum(len(v.images) for v in p.visits),
            "xray_pending": any(v.xray_required for v in p.visits),
            "last_visit": last_visit_date(p),
        }
        for p in patients
    ]

    df = pd.DataFrame(rows, columns=columns)
    df["created_at"] = pd.to_datetime(df["created_at"], format="ISO8601", errors="coerce", utc=True)
    df["last_visit"] = pd.to_datetime(df["last_visit"], format="ISO8601", errors="coerce", utc=True)
    return df
