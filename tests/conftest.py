# =============================================================================
# tests/conftest.py
# Pytest Configuration and Fixtures
# =============================================================================

import base64
import json

import pytest
import requests
from unittest.mock import MagicMock

from records_core.api import APIConfig, MockRecordConnector, RecordServiceConnector
from records_core.models import Patient, PatientFields, Sex, Visit, VisitFile
from records_core.offline import ConnectionManager, LocalDatabase, PatientStore


# =============================================================================
# SAMPLE DATA FIXTURES
# =============================================================================

@pytest.fixture
def alice_fields():
    """Creation input for a valid patient"""
    return PatientFields(name="Alice", age=30, sex="Female", diagnosis="Fracture of the wrist")


@pytest.fixture
def png_payload():
    """Base64 payload of a tiny PNG header"""
    return base64.b64encode(b"\x89PNG\r\n\x1a\nfake-image").decode("ascii")


@pytest.fixture
def sample_patients():
    """Three mirrored patients with visits"""
    return [
        Patient(
            id="p1", name="Alice", age=30, sex=Sex.FEMALE,
            diagnosis="Fracture", notes=None, created_at="2024-01-01T09:00:00.000Z",
            visits=[
                Visit(id="v1", date="2024-01-02", diagnosis="Fracture", images=["aGVsbG8="]),
                Visit(
                    id="v2", date="2024-02-10", xray_required=True,
                    file=VisitFile(data=base64.b64encode(b"report").decode("ascii"),
                                   name="report.pdf", content_type="application/pdf"),
                ),
            ],
        ),
        Patient(
            id="p2", name="bob", age=52, sex=Sex.MALE,
            diagnosis="Hypertension", notes="follow-up in march",
            created_at="2024-03-05T12:30:00.000Z",
        ),
        Patient(
            id="p3", name="Carol", age=0, sex=Sex.OTHER,
            diagnosis=None, notes="newborn check",
            created_at="2023-12-24T08:00:00.000Z",
        ),
    ]


# =============================================================================
# CONNECTOR FIXTURES
# =============================================================================

@pytest.fixture
def mock_config():
    """Configuration for the in-process record service"""
    return APIConfig(api_name="records_mock", base_url="http://records.test")


@pytest.fixture
def record_service(mock_config):
    """In-process record service that honors the HTTP contract"""
    return MockRecordConnector(mock_config)


@pytest.fixture
def http_connector():
    """Real connector whose requests.Session is replaced by a MagicMock"""
    connector = RecordServiceConnector(APIConfig(
        api_name="records_http",
        base_url="http://records.test/",
        api_key="secret-token",
        timeout=5,
    ))
    connector.session = MagicMock()
    return connector


@pytest.fixture
def make_response():
    """Factory building requests.Response objects"""
    def _make(status=200, json_body=None, content=None, headers=None, url="http://records.test/api"):
        response = requests.Response()
        response.status_code = status
        response.url = url
        response.encoding = "utf-8"
        if content is not None:
            response._content = content
        else:
            response._content = json.dumps(json_body).encode("utf-8")
        response.headers.update(headers or {})
        return response

    return _make


# =============================================================================
# STORE FIXTURES
# =============================================================================

@pytest.fixture
def local_db(tmp_path):
    """Durable cache in a temporary directory"""
    db = LocalDatabase(tmp_path / "clinic_records.db")
    yield db
    db.close()


@pytest.fixture
def store(record_service, local_db):
    """Patient store backed by a reachable record service"""
    return PatientStore(record_service, local_db, connection=ConnectionManager())


@pytest.fixture
def offline_store(record_service, local_db):
    """Patient store whose record service cannot be reached"""
    record_service.available = False
    counter = iter(range(1, 1000))
    return PatientStore(
        record_service,
        local_db,
        connection=ConnectionManager(),
        id_factory=lambda: f"local-{next(counter)}",
    )
