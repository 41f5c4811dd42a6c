from __future__ import annotations

import re
from pathlib import Path

from admission_import.cli import main as cli_main

"""SUMMARY line format contract."""

PARSE_SUMMARY = re.compile(
    r"^SUMMARY file=(\S+) rows=([0-9]+) valid=([0-9]+) warning=([0-9]+) invalid=([0-9]+)$", re.M
)
COMMIT_SUMMARY = re.compile(
    r"^SUMMARY committed=([0-9]+)/([0-9]+) failed=([0-9]+) retryable=([0-9]+) elapsed_sec=([0-9]+\.?[0-9]*)$", re.M
)


def test_summary_pattern_example_lines():
    assert PARSE_SUMMARY.match("SUMMARY file=batch.xlsx rows=4 valid=2 warning=1 invalid=1")
    assert COMMIT_SUMMARY.match("SUMMARY committed=3/4 failed=1 retryable=1 elapsed_sec=0.84")


def test_summary_lines_from_cli(temp_workdir: Path, write_config, make_workbook, valid_values, capsys):
    path = make_workbook([valid_values, {**valid_values, "admissionNo": "STU-2025-00002", "gender": "X"}])
    cli_main(["parse", str(path)])
    parse_out = capsys.readouterr().out
    m = PARSE_SUMMARY.search(parse_out)
    assert m, parse_out
    assert m.groups() == ("batch.xlsx", "2", "1", "0", "1")
    assert len(PARSE_SUMMARY.findall(parse_out)) == 1

    cli_main(["override", "2", "on"])
    capsys.readouterr()
    cli_main(["commit", "--dry-run"])
    commit_out = capsys.readouterr().out
    m = COMMIT_SUMMARY.search(commit_out)
    assert m, commit_out
    assert m.groups()[:4] == ("1", "1", "0", "0")
