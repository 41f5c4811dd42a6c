from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

from admission_import.cli import main as cli_main

"""Exit code contract: 0 success, 2 partial failure, 1 fatal."""


def test_exit_code_fatal_config(temp_workdir: Path, capsys):
    (temp_workdir / "config" / "import.yml").write_text("bogus: 1\n", encoding="utf-8")
    code = cli_main(["status"])
    assert code == 1
    assert "ERROR config:" in capsys.readouterr().out


def test_exit_code_fatal_explicit_config_missing(temp_workdir: Path, capsys):
    code = cli_main(["--config", "config/none.yml", "status"])
    assert code == 1
    assert "ERROR config: config file not found" in capsys.readouterr().out


def test_exit_code_all_success(temp_workdir: Path, write_config, make_workbook, valid_values, capsys):
    assert cli_main(["parse", str(make_workbook([valid_values]))]) == 0
    assert cli_main(["override", "2", "on"]) == 0
    assert cli_main(["commit", "--dry-run"]) == 0


def test_exit_code_partial_failure_parse(temp_workdir: Path, write_config, make_workbook, valid_values):
    path = make_workbook([valid_values, {**valid_values, "admissionNo": "STU-2025-00002", "dob": "2015-13-01"}])
    assert cli_main(["parse", str(path)]) == 2


def test_exit_code_warnings_only_is_success(temp_workdir: Path, write_config, make_workbook, valid_values):
    assert cli_main(["parse", str(make_workbook([{**valid_values, "religion": "Zoroastrian"}]))]) == 0


def test_exit_code_partial_failure_commit(temp_workdir: Path, write_config, make_workbook, valid_values, capsys):
    path = make_workbook([valid_values, {**valid_values, "admissionNo": "STU-2025-00002"}])
    cli_main(["parse", str(path)])
    cli_main(["override", "2", "on"])
    cli_main(["override", "3", "on"])

    class HalfCreator:
        def __init__(self, *a, **kw):
            pass

        def create_student(self, record):
            if record["admissionNumber"] == "STU-2025-00002":
                raise TimeoutError("request timed out")
            return "1"

    with patch("admission_import.cli.__main__.DryRunStudentCreator", HalfCreator):
        code = cli_main(["commit", "--dry-run"])
    assert code == 2
    assert "FAILED row 3 (transient, retryable): request timed out" in capsys.readouterr().out


def test_exit_code_fatal_no_session(temp_workdir: Path, write_config):
    assert cli_main(["commit"]) == 1
