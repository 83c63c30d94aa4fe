"""
Record Service API Connector
Translates patient/visit operations into calls against the clinic record service
"""
import base64
import json
import re
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union
from urllib.parse import quote, unquote
from uuid import uuid4

import requests

from .base_connector import BaseAPIConnector, APIConfig
from records_core.errors import TransportError
from records_core.logging import get_logger
from records_core.models import (
    NewVisit,
    Patient,
    PatientFields,
    PatientUpdate,
    Sex,
    UPDATABLE_FIELDS,
    VisitDownload,
    utc_now_iso,
)
from records_core.offline.search import text_matches

logger = get_logger(__name__)

_FILENAME_RE = re.compile(r'filename\s*=\s*"?([^";]+)"?', re.IGNORECASE)
# RFC 5987 form: filename*=UTF-8''report%20v2.pdf
_FILENAME_EXT_RE = re.compile(r"filename\*\s*=\s*([\w-]*)'[^']*'([^;\s]+)", re.IGNORECASE)


def _disposition_filename(disposition: str) -> Optional[str]:
    """Filename from a Content-Disposition header, preferring filename*."""
    match = _FILENAME_EXT_RE.search(disposition)
    if match:
        encoding = "latin-1" if match.group(1).lower() == "iso-8859-1" else "utf-8"
        return unquote(match.group(2), encoding=encoding, errors="replace")

    match = _FILENAME_RE.search(disposition)
    return match.group(1) if match else None


class RecordServiceConnector(BaseAPIConnector):
    """
    Connector for the clinic record service (HTTP/JSON)

    Endpoints:
        GET    api/patients                     -> [Patient]
        GET    api/patients/:id                 -> Patient | 404
        POST   api/patients                     -> 201 {"id"}
        PUT    api/patients/:id                 -> {"success": true}
        DELETE api/patients/:id                 -> {"success": true}
        POST   api/patients/:patientId/visits   -> 201 {"id"}
        GET    api/search?query=Q               -> [Patient]
        GET    api/visits/:visitId/file         -> bytes | 404

    Patients come back with visits and image payloads already resolved.
    Any network failure or unexpected status raises TransportError.
    """

    def _set_auth_header(self):
        """Set bearer authentication header"""
        if self.config.api_key:
            self.session.headers.update({
                "Authorization": f"Bearer {self.config.api_key}",
            })

    def validate_response(self, response: requests.Response) -> bool:
        """Validate that the body decodes as JSON"""
        try:
            response.json()
            return True
        except ValueError:
            return False

    def _ping(self) -> int:
        return len(self.list_patients())

    # =========================================================================
    # READS
    # =========================================================================

    def list_patients(self) -> List[Patient]:
        """Fetch every patient with nested visits and images."""
        response = self._make_request("api/patients")
        patients = self._parse_patients(response)
        logger.debug(f"Fetched {len(patients)} patients from {self.config.api_name}")
        return patients

    def get_patient(self, patient_id: str) -> Optional[Patient]:
        """
        Fetch one patient.

        Returns:
            The patient, or None when the service reports 404
        """
        response = self._make_request(
            f"api/patients/{quote(str(patient_id), safe='')}",
            allowed_statuses=(404,),
        )
        if response.status_code == 404:
            return None

        return self._to_patient(self._parse_json(response), response)

    def search_patients(self, query: str) -> List[Patient]:
        """
        Case-insensitive substring search over name, diagnosis and notes.
        An empty query yields no patients and makes no request.
        """
        if not query or not query.strip():
            return []

        response = self._make_request("api/search", params={"query": query})
        return self._parse_patients(response)

    def download_visit_file(self, visit_id: str) -> Optional[VisitDownload]:
        """
        Download the single file attached to a visit.

        Returns:
            VisitDownload, or None when the visit has no file
        """
        response = self._make_request(
            f"api/visits/{quote(str(visit_id), safe='')}/file",
            allowed_statuses=(404,),
        )
        if response.status_code == 404:
            return None

        return VisitDownload(
            content=response.content,
            filename=_disposition_filename(response.headers.get("Content-Disposition", "")),
            content_type=response.headers.get("Content-Type"),
        )

    # =========================================================================
    # WRITES
    # =========================================================================

    def create_patient(self, fields: PatientFields) -> str:
        """
        Create a patient and return the service-assigned identifier.

        Raises:
            ValidationError: before any request if name, age or sex is missing
        """
        fields.validate()

        response = self._make_request(
            "api/patients", method="POST", data=fields.to_payload()
        )
        return self._created_id(response)

    def update_patient(
        self,
        patient_id: str,
        update: Union[PatientUpdate, Mapping[str, Any]],
    ) -> bool:
        """
        Apply a partial update. Non-whitelisted fields are dropped.

        Raises:
            ValidationError: before any request if nothing is left to update
        """
        if not isinstance(update, PatientUpdate):
            update = PatientUpdate.from_mapping(update)
        update.validate()

        self._make_request(
            f"api/patients/{quote(str(patient_id), safe='')}",
            method="PUT",
            data=update.to_payload(),
        )
        return True

    def delete_patient(self, patient_id: str) -> bool:
        """Delete a patient and, by cascade, its visits and images."""
        self._make_request(
            f"api/patients/{quote(str(patient_id), safe='')}", method="DELETE"
        )
        return True

    def add_visit(self, patient_id: str, visit: NewVisit) -> str:
        """
        Create a visit (and one image row per payload) for a patient.

        The service writes the visit and each image separately; a failure
        part way through leaves a partially populated visit behind.
        """
        visit.validate()

        response = self._make_request(
            f"api/patients/{quote(str(patient_id), safe='')}/visits",
            method="POST",
            data=visit.to_payload(),
        )
        return self._created_id(response)

    # =========================================================================
    # PARSING
    # =========================================================================

    def _parse_patients(self, response: requests.Response) -> List[Patient]:
        data = self._parse_json(response)
        if not isinstance(data, list):
            raise TransportError(
                f"Expected a list of patients from {self.config.api_name}",
                status_code=response.status_code,
                url=response.url,
            )
        return [self._to_patient(item, response) for item in data]

    def _to_patient(self, item: Any, response: requests.Response) -> Patient:
        try:
            return Patient.from_dict(item)
        except (KeyError, TypeError, AttributeError) as e:
            raise TransportError(
                f"Malformed patient record from {self.config.api_name}: {e}",
                status_code=response.status_code,
                url=response.url,
            ) from e

    def _created_id(self, response: requests.Response) -> str:
        body = self._parse_json(response)
        new_id = body.get("id") if isinstance(body, dict) else None
        if not new_id:
            raise TransportError(
                f"{self.config.api_name} did not return an id",
                status_code=response.status_code,
                url=response.url,
            )
        return str(new_id)


class MockRecordConnector(RecordServiceConnector):
    """
    Mock connector for testing - an in-process record service

    Answers the same endpoints with the same status codes and bodies as the
    real service (201 on create, 404 on missing lookups, 400 on missing or
    empty fields, 500 when a visit references a missing patient, cascading
    deletes), so RecordServiceConnector parses its responses unchanged.

    Set ``available = False`` to simulate an unreachable service.
    """

    ROUTES = [
        ("GET", re.compile(r"api/patients"), "_list"),
        ("POST", re.compile(r"api/patients"), "_create"),
        ("GET", re.compile(r"api/patients/([^/]+)"), "_get"),
        ("PUT", re.compile(r"api/patients/([^/]+)"), "_update"),
        ("DELETE", re.compile(r"api/patients/([^/]+)"), "_delete"),
        ("POST", re.compile(r"api/patients/([^/]+)/visits"), "_add_visit"),
        ("GET", re.compile(r"api/search"), "_search"),
        ("GET", re.compile(r"api/visits/([^/]+)/file"), "_download"),
    ]

    def __init__(self, config: APIConfig, available: Optional[bool] = None):
        super().__init__(config)
        params = config.additional_params or {}
        self.available = params.get("available", True) if available is None else available

        # Tables, keyed by id in insertion order
        self._patients: Dict[str, Dict[str, Any]] = {}
        self._visits: Dict[str, Dict[str, Any]] = {}
        self._images: Dict[str, Dict[str, Any]] = {}

        # (method, endpoint) of every request that reached the service
        self.requests: List[Tuple[str, str]] = []

    def _set_auth_header(self):
        """No auth needed for mock"""
        pass

    def _make_request(
        self,
        endpoint: str,
        method: str = "GET",
        params: Optional[Dict] = None,
        data: Optional[Dict] = None,
        allowed_statuses=(),
    ) -> requests.Response:
        url = self._url(endpoint)
        if not self.available:
            raise TransportError(
                f"API request failed for {self.config.api_name}: service unavailable",
                url=url,
            )

        self.requests.append((method, endpoint))
        # Round-trip the body through JSON like a real request would
        body = json.loads(json.dumps(data)) if data is not None else {}
        status, payload, headers = self._dispatch(method, endpoint.strip("/"), params or {}, body)

        response = self._build_response(url, status, payload, headers)
        self._check_status(response, allowed_statuses, url)
        return response

    def _dispatch(self, method: str, path: str, params: Dict, body: Dict):
        for route_method, pattern, handler_name in self.ROUTES:
            if route_method != method:
                continue
            match = pattern.fullmatch(path)
            if match:
                handler = getattr(self, handler_name)
                args = [unquote(group) for group in match.groups()]
                return handler(*args, params=params, body=body)

        return 404, {"error": "Not found"}, {}

    @staticmethod
    def _build_response(url: str, status: int, payload: Any, headers: Dict[str, str]) -> requests.Response:
        response = requests.Response()
        response.status_code = status
        response.url = url
        response.encoding = "utf-8"
        if isinstance(payload, bytes):
            response._content = payload
        else:
            response._content = json.dumps(payload).encode("utf-8")
            response.headers["Content-Type"] = "application/json; charset=utf-8"
        response.headers.update(headers)
        return response

    # =========================================================================
    # SERVICE HANDLERS
    # =========================================================================

    def _enrich(self, patient: Dict[str, Any]) -> Dict[str, Any]:
        visits = []
        for visit in self._visits.values():
            if visit["patientId"] != patient["id"]:
                continue
            images = [
                img["imageData"] for img in self._images.values()
                if img["visitId"] == visit["id"]
            ]
            visits.append({**visit, "images": images})
        return {**patient, "visits": visits}

    def _list(self, params, body):
        return 200, [self._enrich(p) for p in self._patients.values()], {}

    def _get(self, patient_id, params, body):
        patient = self._patients.get(patient_id)
        if patient is None:
            return 404, {"error": "Patient not found"}, {}
        return 200, self._enrich(patient), {}

    def _create(self, params, body):
        name, age, sex = body.get("name"), body.get("age"), body.get("sex")
        if not name or age is None or not sex:
            return 400, {"error": "Missing required fields"}, {}
        if sex not in {s.value for s in Sex}:
            # Rejected by the sex ENUM column
            return 500, {"error": "Failed to create patient"}, {}

        patient_id = str(uuid4())
        self._patients[patient_id] = {
            "id": patient_id,
            "name": name,
            "age": age,
            "sex": sex,
            "contact": body.get("contact") or None,
            "diagnosis": body.get("diagnosis") or None,
            "notes": body.get("notes") or None,
            "createdAt": utc_now_iso(),
        }
        return 201, {"id": patient_id}, {}

    def _update(self, patient_id, params, body):
        changes = {k: v for k, v in body.items() if k in UPDATABLE_FIELDS}
        if not changes:
            return 400, {"error": "No valid fields to update"}, {}

        # UPDATE ... WHERE id = ? touches nothing for an unknown id
        if patient_id in self._patients:
            self._patients[patient_id].update(changes)
        return 200, {"success": True}, {}

    def _delete(self, patient_id, params, body):
        self._patients.pop(patient_id, None)

        # ON DELETE CASCADE
        visit_ids = {vid for vid, v in self._visits.items() if v["patientId"] == patient_id}
        for vid in visit_ids:
            del self._visits[vid]
        for image_id in [i for i, img in self._images.items() if img["visitId"] in visit_ids]:
            del self._images[image_id]

        return 200, {"success": True}, {}

    def _add_visit(self, patient_id, params, body):
        if patient_id not in self._patients:
            # Foreign key violation on visits.patientId
            return 500, {"error": "Failed to create visit"}, {}

        visit_id = str(uuid4())
        self._visits[visit_id] = {
            "id": visit_id,
            "patientId": patient_id,
            "date": body.get("date"),
            "diagnosis": body.get("diagnosis") or None,
            "prescription": body.get("prescription") or None,
            "notes": body.get("notes") or None,
            "xrayRequired": bool(body.get("xrayRequired") or False),
            "fileData": body.get("fileData") or None,
            "fileName": body.get("fileName") or None,
            "fileType": body.get("fileType") or None,
        }

        for image_data in body.get("images") or []:
            image_id = str(uuid4())
            self._images[image_id] = {
                "id": image_id,
                "visitId": visit_id,
                "imageData": image_data,
            }

        return 201, {"id": visit_id}, {}

    def _search(self, params, body):
        query = params.get("query")
        if not query:
            return 200, [], {}

        matches = [
            self._enrich(p) for p in self._patients.values()
            if text_matches(query, p.get("name"), p.get("diagnosis"), p.get("notes"))
        ]
        return 200, matches, {}

    def _download(self, visit_id, params, body):
        visit = self._visits.get(visit_id)
        if visit is None or not visit.get("fileData"):
            return 404, {"error": "File not found"}, {}

        try:
            content = base64.b64decode(visit["fileData"])
        except (TypeError, ValueError):
            return 500, {"error": "Failed to download file"}, {}

        headers = {
            "Content-Type": visit.get("fileType") or "application/octet-stream",
            "Content-Disposition": f'attachment; filename="{visit.get("fileName")}"',
        }
        return 200, content, headers
