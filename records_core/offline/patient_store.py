# =============================================================================
# records_core/offline/patient_store.py
# Patient Store - In-Memory Mirror with Remote-First, Local-Fallback Writes
# =============================================================================
"""
PatientStore - the primary API for patient record operations.

Every operation tries the record service first. When the service cannot be
reached (or answers with a non-2xx status) the equivalent change is applied
to the in-memory mirror instead, and the whole mirror is written to the
durable cache after every mutation.

Usage:
------
from records_core.offline import build_patient_store

store = build_patient_store()

patient_id = store.add_patient({"name": "Alice", "age": 30, "sex": "Female"})
store.add_visit(patient_id, NewVisit(date="2024-01-01", diagnosis="Fracture"))

print(f"Online: {store.is_online}")
"""

from __future__ import annotations
import base64
import copy
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Union
from uuid import uuid4

import pandas as pd

from records_core.errors import CacheError, TransportError
from records_core.models import (
    NewVisit,
    Patient,
    PatientFields,
    PatientUpdate,
    VisitDownload,
    utc_now_iso,
)
from records_core.offline.connection_manager import ConnectionManager
from records_core.offline.local_database import LocalDatabase
from records_core.offline.search import (
    PatientFilter,
    apply_filters,
    patients_to_dataframe,
    search_mirror,
)
from records_core.services import BaseService, ServiceResult


def _new_local_id() -> str:
    return str(uuid4())


class PatientStore(BaseService):
    """
    Owns the patient mirror and decides, per call, between the record
    service result and the local equivalent.

    The connector must expose the record service operations
    (``list_patients``, ``get_patient``, ``create_patient``, ...) and raise
    ``TransportError`` for anything that did not reach a 2xx answer.
    """

    # Durable cache entry holding the serialized patient collection
    MIRROR_KEY = "clinic-records-patients"

    def __init__(
        self,
        connector,
        cache: LocalDatabase,
        connection: Optional[ConnectionManager] = None,
        id_factory: Optional[Callable[[], str]] = None,
        clock: Optional[Callable[[], str]] = None,
    ):
        super().__init__()
        self.connector = connector
        self.cache = cache
        self.connection = connection or ConnectionManager()
        self._new_id = id_factory or _new_local_id
        self._now = clock or utc_now_iso
        self._patients: List[Patient] = []

    # =========================================================================
    # REMOTE ATTEMPTS
    # =========================================================================

    def _remote(self, operation: str, func: Callable[..., Any], *args) -> ServiceResult:
        """Run one record service call and track reachability from its outcome."""
        if self.connection.is_forced_offline:
            self.logger.info(f"{operation}: offline mode forced, using local mirror")
            return ServiceResult.from_exception(
                TransportError("Record service skipped: offline mode is forced")
            )

        result = self.safe_execute(operation, func, *args)
        if result.success:
            self.connection.record_success()
        else:
            self.connection.record_failure(result.error)
        return result

    def _find(self, patient_id: str) -> Optional[Patient]:
        for patient in self._patients:
            if patient.id == patient_id:
                return patient
        return None

    # =========================================================================
    # MIRROR AND DURABLE CACHE
    # =========================================================================

    @property
    def patients(self) -> List[Patient]:
        """Copy of the mirror, in mirror order."""
        return copy.deepcopy(self._patients)

    def get_cached_patient(self, patient_id: str) -> Optional[Patient]:
        """Look a patient up in the mirror only."""
        patient = self._find(patient_id)
        return copy.deepcopy(patient) if patient is not None else None

    def persist(self) -> bool:
        """
        Overwrite the durable cache with the whole mirror.

        Returns:
            True if written. Failures are logged, not raised.
        """
        try:
            self.cache.save_json(self.MIRROR_KEY, [p.to_dict() for p in self._patients])
            return True
        except CacheError as e:
            self.logger.error(f"Could not persist patient mirror: {e}")
            return False

    def _read_cache(self) -> List[Patient]:
        try:
            data = self.cache.load_json(self.MIRROR_KEY, default=[])
        except CacheError as e:
            self.logger.error(f"Could not read patient mirror from local cache: {e}")
            return []

        if not isinstance(data, list):
            self.logger.error("Cached patient mirror is not a list, starting empty")
            return []

        try:
            return [Patient.from_dict(item) for item in data]
        except (KeyError, TypeError, AttributeError) as e:
            self.logger.error(f"Cached patient mirror is malformed, starting empty: {e}")
            return []

    def load(self) -> List[Patient]:
        """
        Populate the mirror.

        The record service list replaces the mirror and is persisted; when
        the service is unavailable the durable cache is loaded as stored.
        """
        result = self._remote("Load patients", self.connector.list_patients)

        if result.success:
            self._patients = result.data
            self.persist()
            self.logger.info(f"Loaded {len(self._patients)} patients from record service")
        else:
            self._patients = self._read_cache()
            self.logger.warning(
                f"Record service unavailable, loaded {len(self._patients)} patients from local cache"
            )

        return self.patients

    # =========================================================================
    # PATIENTS
    # =========================================================================

    def add_patient(self, fields: Union[PatientFields, Mapping[str, Any]]) -> str:
        """
        Create a patient.

        Returns:
            The record service id, or a locally generated one when offline

        Raises:
            ValidationError: required field missing or invalid
        """
        if not isinstance(fields, PatientFields):
            fields = PatientFields.from_mapping(fields)
        fields.validate()

        result = self._remote("Create patient", self.connector.create_patient, fields)

        if result.success:
            patient_id = result.data
        else:
            patient_id = self._new_id()
            self.logger.warning(f"Patient created locally only, id {patient_id}")

        self._patients.append(Patient(
            id=patient_id,
            name=fields.name,
            age=fields.age,
            sex=fields.sex,
            contact=fields.contact,
            diagnosis=fields.diagnosis,
            notes=fields.notes,
            created_at=self._now(),
            visits=[],
        ))
        self.persist()
        return patient_id

    def get_patient(self, patient_id: str) -> Optional[Patient]:
        """Fetch one patient; the mirror answers when the service cannot."""
        result = self._remote("Get patient", self.connector.get_patient, patient_id)

        if result.success:
            return result.data
        return self.get_cached_patient(patient_id)

    def update_patient(
        self,
        patient_id: str,
        update: Union[PatientUpdate, Mapping[str, Any]],
    ) -> bool:
        """
        Apply a partial update. Only name, age, sex, contact, diagnosis and
        notes are accepted; other keys are dropped.

        Raises:
            ValidationError: nothing to update, or a bad value
        """
        if not isinstance(update, PatientUpdate):
            update = PatientUpdate.from_mapping(update)
        update.validate()

        result = self._remote("Update patient", self.connector.update_patient, patient_id, update)
        if not result.success:
            self.logger.warning(f"Patient {patient_id} updated locally only")

        patient = self._find(patient_id)
        if patient is not None:
            patient.apply_update(update)
        self.persist()
        return True

    def delete_patient(self, patient_id: str) -> bool:
        """Remove a patient with all visits. Deleting an unknown id succeeds."""
        result = self._remote("Delete patient", self.connector.delete_patient, patient_id)
        if not result.success:
            self.logger.warning(f"Patient {patient_id} deleted locally only")

        self._patients = [p for p in self._patients if p.id != patient_id]
        self.persist()
        return True

    # =========================================================================
    # VISITS
    # =========================================================================

    def add_visit(self, patient_id: str, visit: NewVisit) -> str:
        """
        Record a visit. The mirror only gains the visit when the patient is
        mirrored; an unknown patient is never created here.

        Raises:
            ValidationError: visit date missing
        """
        visit.validate()

        result = self._remote("Add visit", self.connector.add_visit, patient_id, visit)

        if result.success:
            visit_id = result.data
        else:
            visit_id = self._new_id()
            self.logger.warning(f"Visit created locally only, id {visit_id}")

        patient = self._find(patient_id)
        if patient is None:
            self.logger.warning(f"Visit {visit_id} not mirrored: patient {patient_id} is not in the mirror")
        else:
            patient.visits.append(visit.to_visit(visit_id, patient_id=patient_id))

        self.persist()
        return visit_id

    def download_visit_file(self, visit_id: str) -> Optional[VisitDownload]:
        """
        Fetch the file attached to a visit.

        Returns:
            The file, or None when the visit has none (or its mirrored
            copy cannot be decoded)

        Raises:
            TransportError: service unavailable and the visit is not mirrored
        """
        result = self._remote("Download visit file", self.connector.download_visit_file, visit_id)

        if result.success:
            return result.data

        for patient in self._patients:
            visit = patient.find_visit(visit_id)
            if visit is None:
                continue
            if visit.file is None:
                return None
            try:
                content = base64.b64decode(visit.file.data)
            except (TypeError, ValueError) as e:
                self.logger.error(f"Mirrored file of visit {visit_id} cannot be decoded: {e}")
                return None
            return VisitDownload(
                content=content,
                filename=visit.file.name,
                content_type=visit.file.content_type,
            )

        raise result.exception

    # =========================================================================
    # SEARCH
    # =========================================================================

    def search_patients(self, query: str) -> List[Patient]:
        """Case-insensitive match on name, diagnosis or notes. Empty query: []."""
        if not query or not query.strip():
            return []

        result = self._remote("Search patients", self.connector.search_patients, query)

        if result.success:
            return result.data
        return copy.deepcopy(search_mirror(self._patients, query))

    def find_patients(
        self,
        query: str = "",
        criteria: Optional[PatientFilter] = None,
    ) -> List[Patient]:
        """Search (or take the whole mirror when no query), then filter and sort."""
        if query and query.strip():
            candidates = self.search_patients(query)
        else:
            candidates = self.patients
        return apply_filters(candidates, criteria)

    def to_dataframe(self) -> pd.DataFrame:
        """Summary table of the mirror."""
        return patients_to_dataframe(self._patients)

    # =========================================================================
    # CONNECTION
    # =========================================================================

    @property
    def is_online(self) -> bool:
        return self.connection.is_online

    def get_status(self) -> Dict[str, Any]:
        """Connection state plus mirror size."""
        status = self.connection.get_status_display()
        status["patients"] = len(self._patients)
        status["cache_path"] = str(self.cache.db_path)
        return status

    def force_offline(self) -> None:
        """Skip the record service until go_online() is called."""
        self.connection.force_offline()

    def go_online(self) -> None:
        self.connection.go_online()


def build_patient_store(
    config_manager=None,
    provider: Optional[str] = None,
    cache_path: Optional[Union[str, Path]] = None,
    load: bool = True,
) -> PatientStore:
    """
    Wire a PatientStore from configuration.

    Args:
        config_manager: APIConfigManager; a default one is created if omitted
        provider: Connector provider name (http or mock)
        cache_path: Override for the durable cache location
        load: Populate the mirror immediately
    """
    # Lazy import, the api package depends on this one
    from records_core.api.config_manager import APIConfigManager

    config_manager = config_manager or APIConfigManager()
    connector = config_manager.get_record_connector(provider)
    cache = LocalDatabase(cache_path or config_manager.get_cache_path())

    store = PatientStore(connector, cache)
    if load:
        store.load()
    return store
