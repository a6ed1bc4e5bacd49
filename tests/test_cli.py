import io
import json
import os
import subprocess
import sys
from pathlib import Path
from typing import Any
from unittest.mock import patch

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from mpp import mpp_cli
from mpp.mpp_ast import Declaration

SOURCE = "my $x = 1;"
SRC_DIR = Path(__file__).resolve().parents[1] / "src"


def test_run_mpp_prints_sexpr(capsys: pytest.CaptureFixture[str]) -> None:
    nodes = mpp_cli.run_mpp(SOURCE, is_string=True)
    out = capsys.readouterr().out.strip()
    assert out == "(Declaration my (Variable $x) (Number 1))"
    assert isinstance(nodes[0], Declaration)


def test_run_mpp_json(capsys: pytest.CaptureFixture[str]) -> None:
    mpp_cli.run_mpp(SOURCE, is_string=True, output_format="json")
    data = json.loads(capsys.readouterr().out)
    assert data[0]["kind"] == "Declaration"
    assert data[0]["variable"] == {
        "kind": "Variable",
        "name": "$x",
        "line": 1,
        "col": 4,
    }


def test_run_mpp_tokens(capsys: pytest.CaptureFixture[str]) -> None:
    assert mpp_cli.run_mpp(SOURCE, is_string=True, output_format="tokens") == []
    lines = capsys.readouterr().out.splitlines()
    assert lines[0] == "1:1\tKEYWORD\t'my'"
    assert len(lines) == 5


def test_run_mpp_lexemes(capsys: pytest.CaptureFixture[str]) -> None:
    mpp_cli.run_mpp(SOURCE, is_string=True, output_format="lexemes")
    lines = capsys.readouterr().out.splitlines()
    assert lines[0] == "1:1\tDECLARATION\t'my'"
    assert lines[-1] == "1:10\tTERMINATOR\t';'"


def test_run_mpp_errors_only(capsys: pytest.CaptureFixture[str]) -> None:
    mpp_cli.run_mpp("1;\nfoo(1;", is_string=True, errors_only=True)
    out = capsys.readouterr().out.strip()
    assert out == "2:4: structural: Missing closing parenthesis ')' for '('"


def test_run_mpp_errors_only_clean_source(capsys: pytest.CaptureFixture[str]) -> None:
    mpp_cli.run_mpp(SOURCE, is_string=True, errors_only=True)
    assert capsys.readouterr().out == ""


def test_run_mpp_file_input(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    file_path = tmp_path / "input.mpp"
    file_path.write_text("say 1;\n")
    mpp_cli.run_mpp(str(file_path))
    assert capsys.readouterr().out.strip() == "(Say [(Number 1)])"


def test_run_mpp_streams_multiline_file(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    file_path = tmp_path / "loop.mpp"
    file_path.write_text("while ($x) {\n  say 1;\n}\n" * 3)
    nodes = mpp_cli.run_mpp(str(file_path))
    assert [node.kind for node in nodes] == ["While"] * 3
    assert (nodes[2].line, nodes[2].col) == (7, 1)
    capsys.readouterr()

    mpp_cli.run_mpp(str(file_path), output_format="tokens")
    lines = capsys.readouterr().out.splitlines()
    assert lines[5] == "2:3\tKEYWORD\t'say'"


def test_run_mpp_accepts_perl_suffixes(tmp_path: Path) -> None:
    for name in ("script.pl", "Module.pm"):
        file_path = tmp_path / name
        file_path.write_text("1;")
        assert len(mpp_cli.run_mpp(str(file_path))) == 1


def test_run_mpp_rejects_other_files() -> None:
    with pytest.raises(ValueError, match="Only .mpp, .pl and .pm files are supported."):
        mpp_cli.run_mpp("example.txt")


def test_run_mpp_rejects_unknown_format() -> None:
    with pytest.raises(ValueError, match="Unknown output format"):
        mpp_cli.run_mpp(SOURCE, is_string=True, output_format="yaml")


def test_snapshots_write_then_check(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    (tmp_path / "a.mpp").write_text("my $x = 1;\n")
    (tmp_path / "b.mpp").write_text("print 2;\n")

    assert mpp_cli.run_snapshots(str(tmp_path)) == 0
    assert "[wrote] a.json" in capsys.readouterr().out
    assert json.loads((tmp_path / "b.json").read_text())[0]["kind"] == "Print"

    assert mpp_cli.run_snapshots(str(tmp_path), check=True) == 0
    out = capsys.readouterr().out
    assert "[ok] a.mpp" in out
    assert "[ok] b.mpp" in out


def test_snapshots_report_mismatch_and_missing(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    (tmp_path / "a.mpp").write_text("1;\n")
    (tmp_path / "b.mpp").write_text("2;\n")
    (tmp_path / "a.json").write_text("[]\n")

    assert mpp_cli.run_snapshots(str(tmp_path), check=True) == 2
    out = capsys.readouterr().out
    assert "[mismatch] a.mpp" in out
    assert "[missing] b.mpp" in out


def test_main_parses_string(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(sys, "argv", ["mpp", "-s", SOURCE, "-f", "json"])
    called: dict[str, Any] = {}

    def dummy_run(**kwargs: Any) -> None:
        called.update(kwargs)

    monkeypatch.setattr(mpp_cli, "run_mpp", dummy_run)
    mpp_cli.main()
    assert called == {
        "source": SOURCE,
        "is_string": True,
        "output_format": "json",
        "errors_only": False,
    }


def test_main_calls_repl_on_no_args(monkeypatch: pytest.MonkeyPatch) -> None:
    called = {}

    def fake_repl(*args: Any, **kwargs: Any) -> None:
        called["ran"] = True

    monkeypatch.setattr(sys, "argv", ["mpp"])
    monkeypatch.setattr("mpp.mpp_repl.start_repl", fake_repl)
    mpp_cli.main()
    assert called.get("ran") is True


def test_main_repl_flag_passes_verbose(monkeypatch: pytest.MonkeyPatch) -> None:
    called_args = {}

    def fake_repl(*, verbose: bool) -> None:
        called_args["verbose"] = verbose

    monkeypatch.setattr("mpp.mpp_repl.start_repl", fake_repl)
    monkeypatch.setattr(sys, "argv", ["mpp", "--repl", "--verbose"])
    mpp_cli.main()
    assert called_args["verbose"] is True


def test_main_snapshot_check_exits_on_mismatch(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    (tmp_path / "a.mpp").write_text("1;\n")
    monkeypatch.setattr(sys, "argv", ["mpp", "--snapshot", str(tmp_path), "--check"])
    with pytest.raises(SystemExit) as e:
        mpp_cli.main()
    assert e.value.code == 1


def test_main_missing_file(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    missing = tmp_path / "nope.mpp"
    monkeypatch.setattr(sys, "argv", ["mpp", str(missing)])
    with pytest.raises(SystemExit) as e:
        mpp_cli.main()
    assert e.value.code == 1
    assert "[error] >>>" in capsys.readouterr().err


def test_main_invalid_format(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(sys, "argv", ["mpp", "-f", "xml", "-s", SOURCE])
    with pytest.raises(SystemExit) as e:
        mpp_cli.main()
    assert e.value.code == 2


def test_mpp_cli_module_entrypoint_runs() -> None:
    env = {**os.environ, "PYTHONPATH": str(SRC_DIR)}
    result = subprocess.run(
        [sys.executable, "-m", "mpp.mpp_cli", "--repl"],
        input=b"",
        capture_output=True,
        timeout=20,
        env=env,
    )
    assert result.returncode == 0
    assert b"Exiting MPP REPL." in result.stdout


@settings(suppress_health_check=[HealthCheck.function_scoped_fixture])  # type: ignore[misc]
@given(st.text())  # type: ignore[misc]
def test_run_mpp_random_input_does_not_crash(source: str) -> None:
    with patch("sys.stdout", new_callable=io.StringIO):
        try:
            mpp_cli.run_mpp(source, is_string=True)
            mpp_cli.run_mpp(source, is_string=True, errors_only=True)
        except Exception:
            pytest.fail("Should not crash on random input")
