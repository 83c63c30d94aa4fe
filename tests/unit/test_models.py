# =============================================================================
# tests/unit/test_models.py
# Unit Tests for Patient / Visit Records
# =============================================================================

from datetime import date

import pytest

from records_core.errors import ValidationError
from records_core.models import (
    NewVisit,
    Patient,
    PatientFields,
    PatientUpdate,
    Sex,
    Visit,
    VisitFile,
    utc_now_iso,
)


class TestPatientFieldsValidation:
    """Test creation input checks"""

    def test_valid_fields_pass(self, alice_fields):
        """Name, age and sex present should validate"""
        alice_fields.validate()
        assert alice_fields.sex is Sex.FEMALE

    @pytest.mark.parametrize("missing", ["name", "age", "sex"])
    def test_missing_required_field_fails(self, missing):
        """Each required field is enforced"""
        data = {"name": "Alice", "age": 30, "sex": "Female"}
        del data[missing]

        with pytest.raises(ValidationError) as exc_info:
            PatientFields.from_mapping(data).validate()

        assert missing in exc_info.value.details["missing"]
        assert exc_info.value.code == "DATA_001"

    def test_empty_name_counts_as_missing(self):
        with pytest.raises(ValidationError):
            PatientFields(name="", age=30, sex="Male").validate()

    def test_age_zero_is_valid(self):
        """Newborns have age 0"""
        PatientFields(name="Baby", age=0, sex="Other").validate()

    @pytest.mark.parametrize("age", [-1, "30", True, float("nan"), float("inf")])
    def test_bad_age_fails(self, age):
        with pytest.raises(ValidationError) as exc_info:
            PatientFields(name="Alice", age=age, sex="Female").validate()
        assert exc_info.value.details["field"] == "age"

    def test_sex_outside_enumeration_fails(self):
        """Sex is case-sensitive and limited to Male, Female, Other"""
        with pytest.raises(ValidationError) as exc_info:
            PatientFields(name="Alice", age=30, sex="female").validate()
        assert "Male, Female, Other" in exc_info.value.message

    def test_payload_uses_enum_value(self, alice_fields):
        alice_fields.validate()
        payload = alice_fields.to_payload()

        assert payload["sex"] == "Female"
        assert payload["contact"] is None


class TestPatientUpdate:
    """Test the partial update whitelist"""

    def test_non_whitelisted_keys_are_dropped(self):
        """Only name, age, sex, contact, diagnosis and notes survive"""
        update = PatientUpdate.from_mapping({
            "name": "Alicia",
            "id": "hijack",
            "createdAt": "1999-01-01",
            "visits": [],
        })

        assert update.changes() == {"name": "Alicia"}

    def test_empty_update_fails(self):
        with pytest.raises(ValidationError, match="No valid fields to update"):
            PatientUpdate.from_mapping({"id": "x"}).validate()

    def test_unset_fields_are_not_sent(self):
        update = PatientUpdate(notes="seen again")
        assert update.changes() == {"notes": "seen again"}
        assert not update.is_empty()

    def test_explicit_none_clears_field(self):
        """{"contact": None} is a real update that sends null"""
        update = PatientUpdate.from_mapping({"contact": None})
        update.validate()

        assert update.changes() == {"contact": None}
        assert update.to_payload() == {"contact": None}

    def test_required_fields_cannot_be_cleared(self):
        with pytest.raises(ValidationError, match="cannot be cleared: name"):
            PatientUpdate(name=None).validate()
        with pytest.raises(ValidationError, match="age"):
            PatientUpdate(age=None, notes="x").validate()

    def test_sex_is_checked_when_set(self):
        with pytest.raises(ValidationError):
            PatientUpdate(sex="Unknown").validate()

    def test_payload_serializes_sex(self):
        update = PatientUpdate(sex="Male", age=41)
        update.validate()
        assert update.to_payload() == {"sex": "Male", "age": 41}

    def test_apply_update_merges_fields(self, sample_patients):
        patient = sample_patients[0]
        update = PatientUpdate(diagnosis="Healed")
        update.validate()

        patient.apply_update(update)

        assert patient.diagnosis == "Healed"
        assert patient.name == "Alice"
        assert len(patient.visits) == 2

    def test_apply_update_clears_field(self, sample_patients):
        patient = sample_patients[0]
        patient.contact = "555-0100"
        update = PatientUpdate(contact=None)
        update.validate()

        patient.apply_update(update)

        assert patient.contact is None
        assert patient.name == "Alice"


class TestNewVisit:
    """Test visit creation input"""

    def test_date_is_required(self):
        with pytest.raises(ValidationError, match="date"):
            NewVisit(diagnosis="Flu").validate()

    def test_file_must_be_base64(self):
        visit = NewVisit(
            date="2024-01-01",
            file=VisitFile(data="not base64!", name="scan.pdf", content_type="application/pdf"),
        )

        with pytest.raises(ValidationError, match="base64") as exc_info:
            visit.validate()
        assert exc_info.value.details["field"] == "fileData"

    def test_date_objects_are_serialized(self):
        visit = NewVisit(date=date(2024, 1, 1))
        assert visit.to_payload()["date"] == "2024-01-01"

    def test_payload_flattens_file(self):
        visit = NewVisit(
            date="2024-01-01",
            file=VisitFile(data="cGRm", name="scan.pdf", content_type="application/pdf"),
        )
        payload = visit.to_payload()

        assert payload["fileData"] == "cGRm"
        assert payload["fileName"] == "scan.pdf"
        assert payload["fileType"] == "application/pdf"
        assert payload["xrayRequired"] is False

    def test_to_visit_copies_images(self, png_payload):
        images = [png_payload]
        visit = NewVisit(date="2024-01-01", images=images).to_visit("v9", patient_id="p1")
        images.append("other")

        assert visit.id == "v9"
        assert visit.patient_id == "p1"
        assert visit.images == [png_payload]


class TestSerialization:
    """Test the camelCase wire and cache format"""

    def test_patient_dict_round_trip(self, sample_patients):
        for patient in sample_patients:
            assert Patient.from_dict(patient.to_dict()) == patient

    def test_patient_dict_keys(self, sample_patients):
        data = sample_patients[0].to_dict()

        assert data["createdAt"] == "2024-01-01T09:00:00.000Z"
        assert data["sex"] == "Female"
        assert data["visits"][1]["xrayRequired"] is True
        assert data["visits"][1]["fileName"] == "report.pdf"
        assert "fileData" not in data["visits"][0]

    def test_integer_xray_flag_is_coerced(self):
        visit = Visit.from_dict({"id": 7, "date": "2024-01-01", "xrayRequired": 1})

        assert visit.xray_required is True
        assert visit.id == "7"

    def test_unexpected_sex_is_kept(self):
        patient = Patient.from_dict({"id": "p1", "name": "X", "age": 1, "sex": "Unknown"})
        assert patient.sex == "Unknown"

    def test_timestamp_format(self):
        stamp = utc_now_iso()
        assert stamp.endswith("Z")
        assert len(stamp) == len("2024-01-01T00:00:00.000Z")
