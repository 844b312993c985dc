"""Tests for the GuardSmith command line."""
import json

from typer.testing import CliRunner

from cli import app

runner = CliRunner()

SOURCE = (
    "function inc(p, q) {\n"
    "  if (p < 10) { return 1; }\n"
    "  if (!q) { return 2; }\n"
    "}\n"
)


def test_json_output(tmp_path):
    src = tmp_path / "subject.js"
    src.write_text(SOURCE)
    result = runner.invoke(app, [str(src), "--json", "--seed", "11"])
    assert result.exit_code == 0
    data = json.loads(result.stdout)
    inc = data[str(src)]["inc"]
    assert inc["params"] == ["p", "q"]
    assert [c["kind"] for c in inc["constraints"]["p"]] == ["integer", "integer"]
    assert [c["value"] for c in inc["constraints"]["q"]] == ["true", "false"]


def test_text_output(tmp_path):
    src = tmp_path / "subject.js"
    src.write_text(SOURCE)
    result = runner.invoke(app, [str(src)])
    assert result.exit_code == 0
    assert "inc(p, q)" in result.stdout
    assert "q → true, false" in result.stdout


def test_directory_scan(tmp_path):
    (tmp_path / "a.js").write_text(SOURCE)
    result = runner.invoke(app, [str(tmp_path), "--json"])
    assert result.exit_code == 0
    assert str(tmp_path / "a.js") in json.loads(result.stdout)


def test_missing_path_fails(tmp_path):
    result = runner.invoke(app, [str(tmp_path / "nope.js")])
    assert result.exit_code == 1


def test_non_js_file_fails(tmp_path):
    src = tmp_path / "subject.py"
    src.write_text("x = 1\n")
    result = runner.invoke(app, [str(src)])
    assert result.exit_code == 1


def test_parse_error_fails(tmp_path):
    src = tmp_path / "broken.js"
    src.write_text("function f(x) { if (x < ) {} }\n")
    result = runner.invoke(app, [str(src)])
    assert result.exit_code == 1


def test_bad_seed_environment_fails(tmp_path, monkeypatch):
    src = tmp_path / "subject.js"
    src.write_text(SOURCE)
    monkeypatch.setenv("GUARDSMITH_SEED", "abc")
    result = runner.invoke(app, [str(src)])
    assert result.exit_code == 1
    assert "GUARDSMITH_SEED" in result.output
