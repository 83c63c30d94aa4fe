# =============================================================================
# records_core/models/patient.py
# Patient / Visit Data Model
# =============================================================================
"""
Typed records for the patient -> visit -> image hierarchy.

Attribute names are snake_case; ``to_dict``/``from_dict`` speak the record
service's camelCase JSON, which is also the format of the durable cache.
Images are carried as their base64 payload strings, the way the record
service resolves them.
"""

from __future__ import annotations
import base64
import math
from dataclasses import dataclass, field, fields as dataclass_fields, replace
from datetime import date, datetime, timezone
from enum import Enum
from numbers import Real
from typing import Any, Dict, List, Mapping, Optional, Union

from records_core.errors import ValidationError
from records_core.logging import get_logger

logger = get_logger(__name__)

# Patient fields the record service accepts in a partial update
UPDATABLE_FIELDS = ("name", "age", "sex", "contact", "diagnosis", "notes")

# Required on creation
REQUIRED_FIELDS = ("name", "age", "sex")


class Sex(str, Enum):
    """Patient sex as stored by the record service."""
    MALE = "Male"
    FEMALE = "Female"
    OTHER = "Other"


def utc_now_iso() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and a Z suffix."""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def _coerce_sex(value: Any) -> Sex:
    try:
        return Sex(value)
    except ValueError:
        raise ValidationError(
            f"Invalid sex '{value}'. Expected one of: {', '.join(s.value for s in Sex)}",
            field="sex",
        )


def _check_age(value: Any) -> None:
    if isinstance(value, bool) or not isinstance(value, Real):
        raise ValidationError("Age must be a number", field="age")
    if not math.isfinite(value) or value < 0:
        raise ValidationError("Age must be a finite non-negative number", field="age")


def _optional_text(value: Any) -> Optional[str]:
    return None if value is None else str(value)


# =============================================================================
# STORED RECORDS
# =============================================================================

@dataclass
class VisitFile:
    """Single file attached to a visit (base64 payload + name + MIME type)."""
    data: str
    name: Optional[str] = None
    content_type: Optional[str] = None


@dataclass
class Visit:
    """A visit, exclusively owned by one patient."""
    id: str
    date: str
    patient_id: Optional[str] = None
    diagnosis: Optional[str] = None
    prescription: Optional[str] = None
    notes: Optional[str] = None
    xray_required: bool = False
    file: Optional[VisitFile] = None
    images: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "date": self.date,
            "diagnosis": self.diagnosis,
            "prescription": self.prescription,
            "notes": self.notes,
            "xrayRequired": self.xray_required,
            "images": list(self.images),
        }
        if self.patient_id is not None:
            data["patientId"] = self.patient_id
        if self.file is not None:
            data["fileData"] = self.file.data
            data["fileName"] = self.file.name
            data["fileType"] = self.file.content_type
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Visit:
        file = None
        if data.get("fileData"):
            file = VisitFile(
                data=data["fileData"],
                name=data.get("fileName"),
                content_type=data.get("fileType"),
            )

        return cls(
            id=str(data["id"]),
            date=data.get("date"),
            patient_id=data.get("patientId"),
            diagnosis=data.get("diagnosis"),
            prescription=data.get("prescription"),
            notes=data.get("notes"),
            # MySQL BOOLEAN comes back as 0/1
            xray_required=bool(data.get("xrayRequired") or False),
            file=file,
            images=list(data.get("images") or []),
        )


@dataclass
class Patient:
    """A patient with their visits in entry order."""
    id: str
    name: str
    age: Union[int, float]
    sex: Sex
    contact: Optional[str] = None
    diagnosis: Optional[str] = None
    notes: Optional[str] = None
    created_at: Optional[str] = None
    visits: List[Visit] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "age": self.age,
            "sex": self.sex.value if isinstance(self.sex, Sex) else self.sex,
            "contact": self.contact,
            "diagnosis": self.diagnosis,
            "notes": self.notes,
            "createdAt": self.created_at,
            "visits": [visit.to_dict() for visit in self.visits],
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Patient:
        sex = data.get("sex")
        try:
            sex = Sex(sex)
        except ValueError:
            # Keep whatever the service stored rather than dropping the record
            logger.warning(f"Patient {data.get('id')} has unexpected sex value: {sex!r}")

        return cls(
            id=str(data["id"]),
            name=data.get("name"),
            age=data.get("age"),
            sex=sex,
            contact=data.get("contact"),
            diagnosis=data.get("diagnosis"),
            notes=data.get("notes"),
            created_at=data.get("createdAt"),
            visits=[Visit.from_dict(v) for v in data.get("visits") or []],
        )

    def apply_update(self, update: PatientUpdate) -> None:
        """Merge the provided fields of a partial update, None clearing a field."""
        for name, value in update.changes().items():
            setattr(self, name, value)

    def find_visit(self, visit_id: str) -> Optional[Visit]:
        for visit in self.visits:
            if visit.id == visit_id:
                return visit
        return None


# =============================================================================
# INPUT STRUCTURES
# =============================================================================

@dataclass
class PatientFields:
    """Fields supplied when creating a patient."""
    name: Optional[str] = None
    age: Optional[Union[int, float]] = None
    sex: Optional[Union[Sex, str]] = None
    contact: Optional[str] = None
    diagnosis: Optional[str] = None
    notes: Optional[str] = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> PatientFields:
        """Build from a loose mapping, ignoring keys that are not patient fields."""
        return cls(**{k: data[k] for k in UPDATABLE_FIELDS if k in data})

    def validate(self) -> None:
        """
        Check required fields and value types.

        Raises:
            ValidationError: name, age or sex missing, age not a finite
                non-negative number, or sex outside the enumeration
        """
        missing = [
            name for name in REQUIRED_FIELDS
            if getattr(self, name) is None or getattr(self, name) == ""
        ]
        if missing:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing)}",
                missing=missing,
            )

        _check_age(self.age)
        self.sex = _coerce_sex(self.sex)

    def to_payload(self) -> Dict[str, Any]:
        sex = self.sex.value if isinstance(self.sex, Sex) else self.sex
        return {
            "name": self.name,
            "age": self.age,
            "sex": sex,
            "contact": _optional_text(self.contact),
            "diagnosis": _optional_text(self.diagnosis),
            "notes": _optional_text(self.notes),
        }


class _Unset(Enum):
    """Marker for a partial-update field the caller did not provide."""
    UNSET = "UNSET"

    def __repr__(self) -> str:
        return "UNSET"


UNSET = _Unset.UNSET


@dataclass
class PatientUpdate:
    """
    Partial update of a patient. Only the whitelisted fields exist on this
    structure. A field left at ``UNSET`` is not sent; a field given as
    ``None`` is sent as null and clears the stored value. The required
    fields (name, age, sex) cannot be cleared.
    """
    name: Union[str, None, _Unset] = UNSET
    age: Union[int, float, None, _Unset] = UNSET
    sex: Union[Sex, str, None, _Unset] = UNSET
    contact: Union[str, None, _Unset] = UNSET
    diagnosis: Union[str, None, _Unset] = UNSET
    notes: Union[str, None, _Unset] = UNSET

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> PatientUpdate:
        """Keep whitelisted keys, silently dropping everything else."""
        dropped = [k for k in data if k not in UPDATABLE_FIELDS]
        if dropped:
            logger.debug(f"Ignoring non-updatable patient fields: {dropped}")
        return cls(**{k: data[k] for k in UPDATABLE_FIELDS if k in data})

    def changes(self) -> Dict[str, Any]:
        """Provided fields as attribute-name -> value, explicit None included."""
        return {
            f.name: getattr(self, f.name)
            for f in dataclass_fields(self)
            if getattr(self, f.name) is not UNSET
        }

    def is_empty(self) -> bool:
        return not self.changes()

    def validate(self) -> None:
        """
        Raises:
            ValidationError: no field provided, a required field cleared,
                or a provided field has a bad value
        """
        changes = self.changes()
        if not changes:
            raise ValidationError(
                "No valid fields to update",
                details={"allowed": list(UPDATABLE_FIELDS)},
            )

        cleared = [name for name in REQUIRED_FIELDS if name in changes and changes[name] in (None, "")]
        if cleared:
            raise ValidationError(
                f"Required fields cannot be cleared: {', '.join(cleared)}",
                missing=cleared,
            )

        if "age" in changes:
            _check_age(self.age)
        if "sex" in changes:
            self.sex = _coerce_sex(self.sex)

    def to_payload(self) -> Dict[str, Any]:
        return {
            name: value.value if isinstance(value, Sex) else value
            for name, value in self.changes().items()
        }


@dataclass
class NewVisit:
    """Fields supplied when adding a visit to a patient."""
    date: Optional[Union[str, date, datetime]] = None
    diagnosis: Optional[str] = None
    prescription: Optional[str] = None
    notes: Optional[str] = None
    xray_required: bool = False
    images: List[str] = field(default_factory=list)
    file: Optional[VisitFile] = None

    def validate(self) -> None:
        """
        Raises:
            ValidationError: date missing, or the attached file is not base64
        """
        if self.date is None or self.date == "":
            raise ValidationError("Visit date is required", missing=["date"])
        if self.file is not None:
            try:
                base64.b64decode(self.file.data, validate=True)
            except (TypeError, ValueError):
                raise ValidationError("Attached file data is not valid base64", field="fileData")

    @property
    def date_text(self) -> str:
        if isinstance(self.date, (date, datetime)):
            return self.date.isoformat()
        return str(self.date)

    def to_payload(self) -> Dict[str, Any]:
        payload = {
            "date": self.date_text,
            "diagnosis": self.diagnosis,
            "prescription": self.prescription,
            "notes": self.notes,
            "xrayRequired": bool(self.xray_required),
            "images": list(self.images),
        }
        if self.file is not None:
            payload["fileData"] = self.file.data
            payload["fileName"] = self.file.name
            payload["fileType"] = self.file.content_type
        return payload

    def to_visit(self, visit_id: str, patient_id: Optional[str] = None) -> Visit:
        """Materialize as a stored visit under the given identifier."""
        return Visit(
            id=visit_id,
            date=self.date_text,
            patient_id=patient_id,
            diagnosis=self.diagnosis,
            prescription=self.prescription,
            notes=self.notes,
            xray_required=bool(self.xray_required),
            file=replace(self.file) if self.file is not None else None,
            images=list(self.images),
        )


@dataclass
class VisitDownload:
    """Decoded visit attachment as served by the file endpoint."""
    content: bytes
    filename: Optional[str] = None
    content_type: Optional[str] = None
