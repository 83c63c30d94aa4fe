# =============================================================================
# tests/unit/test_search.py
# Unit Tests for Search, Filter and Summary Helpers
# =============================================================================

import pandas as pd
import pytest

from records_core.models import Sex
from records_core.offline import (
    PatientFilter,
    apply_filters,
    last_visit_date,
    matches_query,
    patients_to_dataframe,
    search_mirror,
)


class TestMatching:
    """Test the shared case-insensitive matching rule"""

    def test_matches_name_diagnosis_and_notes(self, sample_patients):
        alice, bob, carol = sample_patients

        assert matches_query(alice, "ALI")
        assert matches_query(bob, "tension")
        assert matches_query(carol, "Newborn")

    def test_missing_fields_never_match(self, sample_patients):
        carol = sample_patients[2]
        assert not matches_query(carol, "none")

    def test_contact_is_not_searched(self, sample_patients):
        alice = sample_patients[0]
        alice.contact = "555-0100"
        assert not matches_query(alice, "555")

    @pytest.mark.parametrize("query", ["", "  ", None])
    def test_empty_query_matches_nothing(self, sample_patients, query):
        assert search_mirror(sample_patients, query) == []

    def test_search_keeps_mirror_order(self, sample_patients):
        results = search_mirror(sample_patients, "o")
        assert [p.id for p in results] == ["p2", "p3"]


class TestFilters:
    """Test list filters and ordering"""

    def test_no_criteria_returns_everything(self, sample_patients):
        assert apply_filters(sample_patients, None) == sample_patients

    def test_sex_filter_accepts_enum_or_text(self, sample_patients):
        by_enum = apply_filters(sample_patients, PatientFilter(sex=Sex.MALE))
        by_text = apply_filters(sample_patients, PatientFilter(sex="Male"))

        assert [p.id for p in by_enum] == ["p2"]
        assert by_text == by_enum

    def test_age_bounds_are_inclusive(self, sample_patients):
        results = apply_filters(sample_patients, PatientFilter(age_min=0, age_max=30, sort_by="age"))
        assert [p.id for p in results] == ["p3", "p1"]

    def test_sort_by_name_ignores_case(self, sample_patients):
        results = apply_filters(sample_patients, PatientFilter(sort_by="name"))
        assert [p.name for p in results] == ["Alice", "bob", "Carol"]

    def test_sort_by_recent(self, sample_patients):
        results = apply_filters(sample_patients, PatientFilter(sort_by="recent"))
        assert [p.id for p in results] == ["p2", "p1", "p3"]

    def test_unknown_sort_key_is_rejected(self):
        with pytest.raises(ValueError):
            PatientFilter(sort_by="weight")


class TestSummary:
    """Test the tabular summary"""

    def test_last_visit_date(self, sample_patients):
        alice, bob, _ = sample_patients

        assert last_visit_date(alice) == "2024-02-10"
        assert last_visit_date(bob) == "2024-03-05T12:30:00.000Z"

    def test_dataframe_columns_and_counts(self, sample_patients):
        df = patients_to_dataframe(sample_patients)

        assert list(df["id"]) == ["p1", "p2", "p3"]
        assert list(df["visit_count"]) == [2, 0, 0]
        assert list(df["image_count"]) == [1, 0, 0]
        assert list(df["xray_pending"]) == [True, False, False]
        assert df.loc[0, "sex"] == "Female"
        assert df.loc[0, "last_visit"] == pd.Timestamp("2024-02-10", tz="UTC")

    def test_empty_dataframe_keeps_columns(self):
        df = patients_to_dataframe([])

        assert df.empty
        assert "visit_count" in df.columns
