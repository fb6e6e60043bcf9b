import json

import pytest

from conftest import SAMPLE_CSV
from extract import main


@pytest.fixture
def env(tmp_path, monkeypatch):
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path / 'cli.db'}")
    monkeypatch.setenv("BLOB_STORAGE_DIR", str(tmp_path / "uploads"))
    monkeypatch.delenv("GROQ_API_KEY", raising=False)
    return tmp_path


def test_cli_imports_csv_and_writes_output(env):
    statement = env / "statement.csv"
    statement.write_text(SAMPLE_CSV, encoding="utf-8")
    output = env / "result.json"

    assert main([str(statement), "--user", "cli-user", "-o", str(output)]) == 0

    assert json.loads(output.read_text(encoding="utf-8")) == {
        "success": True, "imported": 2, "skipped": 0, "total": 2, "format": "csv",
    }


def test_cli_prints_result_json(env, capsys):
    statement = env / "statement.csv"
    statement.write_text(SAMPLE_CSV, encoding="utf-8")

    assert main([str(statement)]) == 0

    out = capsys.readouterr().out
    assert '"imported": 2' in out
    assert "Monthly burn:" in out


def test_cli_reports_missing_file(env, capsys):
    assert main([str(env / "missing.csv")]) == 1
    assert "File not found" in capsys.readouterr().out


def test_cli_reports_import_errors(env, capsys):
    statement = env / "statement.csv"
    statement.write_text("when,what\n01/12/2024,Coffee\n", encoding="utf-8")

    assert main([str(statement)]) == 1
    assert "No date column found" in capsys.readouterr().out
