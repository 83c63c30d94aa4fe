# =============================================================================
# tests/unit/test_cli.py
# Unit Tests for the clinic-records Command Line
# =============================================================================

import json
import logging

import pandas as pd
import pytest

from records_core.cli import main


@pytest.fixture
def cli(tmp_path, monkeypatch):
    """Run the CLI offline against a temporary cache"""
    monkeypatch.chdir(tmp_path)
    for var in ("RECORDS_PROVIDER", "RECORDS_API_URL", "RECORDS_API_TIMEOUT", "RECORDS_CACHE_PATH", "RECORDS_LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)
    cache = str(tmp_path / "cli.db")

    # main() reconfigures the root logger
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level

    def _run(*argv):
        return main(["--provider", "mock", "--offline", "--cache-path", cache, *argv])

    yield _run

    root.handlers[:] = handlers
    root.setLevel(level)


def _last_line(capsys):
    return capsys.readouterr().out.strip().splitlines()[-1]


class TestPatientCommands:
    """Test patient management through the CLI"""

    def test_add_list_and_show(self, cli, capsys):
        assert cli("add-patient", "--name", "Alice", "--age", "30", "--sex", "Female") == 0
        patient_id = _last_line(capsys)

        assert cli("list") == 0
        assert "Alice" in capsys.readouterr().out

        assert cli("show", patient_id) == 0
        shown = json.loads(capsys.readouterr().out)
        assert shown["name"] == "Alice"
        assert shown["age"] == 30

    def test_update_and_delete(self, cli, capsys):
        cli("add-patient", "--name", "Alice", "--age", "30", "--sex", "Female")
        patient_id = _last_line(capsys)

        assert cli("update", patient_id, "--set", "age=31", "--set", "notes=called") == 0
        capsys.readouterr()
        cli("show", patient_id)
        shown = json.loads(capsys.readouterr().out)
        assert shown["age"] == 31
        assert shown["notes"] == "called"

        assert cli("delete", patient_id) == 0
        assert cli("delete", patient_id) == 0

    def test_show_unknown_patient_fails(self, cli, capsys):
        assert cli("show", "nobody") == 1
        assert "not found" in capsys.readouterr().err

    def test_update_without_fields_fails(self, cli, capsys):
        cli("add-patient", "--name", "Alice", "--age", "30", "--sex", "Female")
        patient_id = _last_line(capsys)

        assert cli("update", patient_id, "--set", "id=hijack") == 1
        assert "No valid fields to update" in capsys.readouterr().err

    def test_search_with_filters(self, cli, capsys):
        cli("add-patient", "--name", "Alice", "--age", "30", "--sex", "Female", "--diagnosis", "Flu")
        cli("add-patient", "--name", "Bob", "--age", "60", "--sex", "Male", "--diagnosis", "Flu")
        capsys.readouterr()

        assert cli("search", "flu", "--sex", "Male") == 0
        out = capsys.readouterr().out
        assert "Bob" in out
        assert "Alice" not in out


class TestVisitCommands:
    """Test visits and attachments through the CLI"""

    def test_add_visit_and_download(self, cli, capsys, tmp_path):
        cli("add-patient", "--name", "Alice", "--age", "30", "--sex", "Female")
        patient_id = _last_line(capsys)

        report = tmp_path / "report.pdf"
        report.write_bytes(b"%PDF-1.4 report")
        image = tmp_path / "scan.png"
        image.write_bytes(b"\x89PNG")

        assert cli(
            "add-visit", patient_id, "--date", "2024-01-01", "--diagnosis", "Fracture",
            "--xray", "--image", str(image), "--file", str(report),
        ) == 0
        visit_id = _last_line(capsys)

        output = tmp_path / "downloaded.pdf"
        assert cli("download", visit_id, "-o", str(output)) == 0
        assert output.read_bytes() == b"%PDF-1.4 report"

    def test_download_without_file_fails(self, cli, capsys):
        cli("add-patient", "--name", "Alice", "--age", "30", "--sex", "Female")
        patient_id = _last_line(capsys)
        cli("add-visit", patient_id, "--date", "2024-01-01")
        visit_id = _last_line(capsys)

        assert cli("download", visit_id) == 1
        assert "has no file" in capsys.readouterr().err


class TestReportingCommands:
    """Test export and status"""

    def test_export_csv(self, cli, capsys, tmp_path):
        cli("add-patient", "--name", "Alice", "--age", "30", "--sex", "Female")
        target = tmp_path / "patients.csv"

        assert cli("export", str(target)) == 0

        df = pd.read_csv(target)
        assert list(df["name"]) == ["Alice"]
        assert "visit_count" in df.columns

    def test_status(self, cli, capsys):
        assert cli("status") == 0
        status = json.loads(capsys.readouterr().out)

        assert status["forced_offline"] is True
        assert status["patients"] == 0


class TestLogLevel:
    """Test how the console log level is chosen"""

    def test_configured_level_is_honoured(self, cli, monkeypatch):
        monkeypatch.setenv("RECORDS_LOG_LEVEL", "DEBUG")

        assert cli("status") == 0

        assert logging.getLogger().level == logging.DEBUG

    def test_default_configuration_logs_info(self, cli):
        assert cli("status") == 0

        assert logging.getLogger().level == logging.INFO

    def test_verbose_flag_overrides_configuration(self, cli, monkeypatch):
        monkeypatch.setenv("RECORDS_LOG_LEVEL", "ERROR")

        assert cli("-vv", "status") == 0

        assert logging.getLogger().level == logging.DEBUG
