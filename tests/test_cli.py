from __future__ import annotations

import json
from pathlib import Path

from typer.testing import CliRunner

from pe_factory import build_pe
from wldd.cli import app

runner = CliRunner()


def _setup(tmp_path: Path, names, present):
    exe = tmp_path / "prog.exe"
    exe.write_bytes(build_pe(names))
    d = tmp_path / "libs"
    d.mkdir()
    for f in present:
        (d / f).write_bytes(b"MZ")
    return exe, d


def test_cli_all_found_exits_zero(tmp_path: Path):
    exe, d = _setup(tmp_path, [b"A.dll", b"B.dll"], ["a.dll", "B.DLL"])
    result = runner.invoke(app, [str(exe), "-d", str(d), "--no-default-dirs"])
    assert result.exit_code == 0, result.output
    assert f"{exe}:" in result.output
    assert "A.dll" in result.output
    assert str(d) in result.output


def test_cli_missing_dependency_exits_one(tmp_path: Path):
    exe, d = _setup(tmp_path, [b"A.dll", b"B.dll"], ["A.dll"])
    result = runner.invoke(app, [str(exe), "--dir", str(d), "--no-default-dirs"])
    assert result.exit_code == 1
    assert "Not found" in result.output


def test_cli_json_output(tmp_path: Path):
    exe, d = _setup(tmp_path, [b"A.dll", b"B.dll"], ["A.dll"])
    result = runner.invoke(app, [str(exe), "-d", str(d), "--no-default-dirs", "--json"])
    assert result.exit_code == 1

    payload = json.loads(result.stdout)
    assert payload["search_dirs"] == [str(d)]
    deps = payload["files"][0]["dependencies"]
    assert [(x["name"], x["status"], x["found_in"]) for x in deps] == [
        ("A.dll", "found", str(d)),
        ("B.dll", "not_found", None),
    ]


def test_cli_output_file(tmp_path: Path):
    exe, d = _setup(tmp_path, [b"A.dll"], ["A.dll"])
    out = tmp_path / "out" / "report.json"
    result = runner.invoke(app, [str(exe), "-d", str(d), "--no-default-dirs", "-o", str(out)])
    assert result.exit_code == 0, result.output
    payload = json.loads(out.read_text(encoding="utf-8"))
    assert payload["tool"]["name"] == "wldd"
    assert payload["files"][0]["state"] == "resolved"


def test_cli_invalid_search_dir_is_usage_error(tmp_path: Path):
    exe, _ = _setup(tmp_path, [b"A.dll"], [])
    result = runner.invoke(app, [str(exe), "-d", str(tmp_path / "missing")])
    assert result.exit_code == 2


def test_cli_not_pe_exits_one(tmp_path: Path):
    bad = tmp_path / "notes.txt"
    bad.write_text("hello", encoding="utf-8")
    result = runner.invoke(app, [str(bad), "--no-default-dirs"])
    assert result.exit_code == 1


def test_cli_static_binary_exits_zero(tmp_path: Path):
    exe, _ = _setup(tmp_path, [], [])
    result = runner.invoke(app, [str(exe), "--no-default-dirs"])
    assert result.exit_code == 0
    assert "not a dynamic executable" in result.output


def test_cli_multiple_files_one_failure(tmp_path: Path):
    exe, d = _setup(tmp_path, [b"A.dll"], ["A.dll"])
    result = runner.invoke(app, [str(exe), str(tmp_path / "missing.exe"), "-d", str(d), "--no-default-dirs", "-j", "2"])
    assert result.exit_code == 1
    assert "A.dll" in result.output


def test_cli_config_default_dirs(tmp_path: Path):
    exe, d = _setup(tmp_path, [b"A.dll"], ["A.dll"])
    cfg = tmp_path / "wldd.yaml"
    cfg.write_text(f"search:\n  default_dirs:\n    - {d.as_posix()}\n", encoding="utf-8")
    result = runner.invoke(app, [str(exe), "--config", str(cfg)])
    assert result.exit_code == 0, result.output


def test_cli_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert "wldd version" in result.output


def test_cli_unlistable_search_dir_is_usage_error(tmp_path: Path, monkeypatch):
    exe, d = _setup(tmp_path, [b"A.dll"], ["A.dll"])
    real_iterdir = Path.iterdir

    def iterdir(self):
        if self == d:
            raise PermissionError(13, "Permission denied", str(self))
        return real_iterdir(self)

    monkeypatch.setattr(Path, "iterdir", iterdir)
    result = runner.invoke(app, [str(exe), "-d", str(d), "--no-default-dirs"])
    assert result.exit_code == 2


def test_cli_missing_config_is_usage_error(tmp_path: Path):
    exe, _ = _setup(tmp_path, [b"A.dll"], [])
    result = runner.invoke(app, [str(exe), "--config", str(tmp_path / "nope.yaml")])
    assert result.exit_code == 2
    assert not isinstance(result.exception, FileNotFoundError)


def test_cli_invalid_config_is_usage_error(tmp_path: Path):
    exe, _ = _setup(tmp_path, [b"A.dll"], [])
    bad_yaml = tmp_path / "bad.yaml"
    bad_yaml.write_text("search: [unclosed\n", encoding="utf-8")
    assert runner.invoke(app, [str(exe), "--config", str(bad_yaml)]).exit_code == 2

    bad_value = tmp_path / "bad_value.yaml"
    bad_value.write_text("limits:\n  max_descriptors: -1\n", encoding="utf-8")
    assert runner.invoke(app, [str(exe), "--config", str(bad_value)]).exit_code == 2
