"""Tests for GoToolchain: subprocess is mocked, no Go install needed."""

from __future__ import annotations

import os
import subprocess
from pathlib import Path
from unittest.mock import patch

from go_ssa_viewer.core import CanInline, ViewOptions
from go_ssa_viewer.toolchain import GoToolchain

from test_core import INLINE_DIAGNOSTICS, SSA_OUTPUT


def _completed(stderr: str, returncode: int = 0) -> subprocess.CompletedProcess:
    return subprocess.CompletedProcess(args=["go"], returncode=returncode, stdout="", stderr=stderr)


class TestExtractSSA:
    def test_runs_build_with_gossafunc(self, tmp_path: Path):
        toolchain = GoToolchain("go")
        with patch("go_ssa_viewer.toolchain.subprocess.run", return_value=_completed(SSA_OUTPUT)) as run:
            result = toolchain.extract_ssa(str(tmp_path), "main.Foo")

        assert result is not None
        assert result.source_file_name == "/main.go"
        args, kwargs = run.call_args
        assert args[0] == ["go", "build", "./..."]
        assert kwargs["cwd"] == str(tmp_path)
        assert kwargs["env"]["GOSSAFUNC"] == "main.Foo+"
        assert kwargs["capture_output"] is True
        assert kwargs["encoding"] == "utf-8"

    def test_method_identifier_is_passed_verbatim(self, tmp_path: Path):
        toolchain = GoToolchain("go")
        with patch("go_ssa_viewer.toolchain.subprocess.run", return_value=_completed("")) as run:
            toolchain.extract_ssa(str(tmp_path), "(*T).Method")

        assert run.call_args.kwargs["env"]["GOSSAFUNC"] == "(*T).Method+"

    def test_inherits_environment(self, tmp_path: Path):
        toolchain = GoToolchain("go", extra_env={"GOFLAGS": "-mod=mod"})
        with patch.dict(os.environ, {"GOPATH": "/tmp/gopath"}):
            with patch("go_ssa_viewer.toolchain.subprocess.run", return_value=_completed("")) as run:
                toolchain.extract_ssa(str(tmp_path), "main.Foo")

        env = run.call_args.kwargs["env"]
        assert env["GOPATH"] == "/tmp/gopath"
        assert env["GOFLAGS"] == "-mod=mod"

    def test_not_found(self, tmp_path: Path):
        toolchain = GoToolchain("go")
        with patch("go_ssa_viewer.toolchain.subprocess.run", return_value=_completed(SSA_OUTPUT)):
            assert toolchain.extract_ssa(str(tmp_path), "main.Missing") is None

    def test_nonzero_exit_with_segment_still_extracts(self, tmp_path: Path):
        toolchain = GoToolchain("go")
        with patch("go_ssa_viewer.toolchain.subprocess.run", return_value=_completed(SSA_OUTPUT, returncode=1)):
            assert toolchain.extract_ssa(str(tmp_path), "main.Foo") is not None

    def test_missing_binary(self, tmp_path: Path):
        toolchain = GoToolchain("go-not-installed")
        with patch("go_ssa_viewer.toolchain.subprocess.run", side_effect=FileNotFoundError("go-not-installed")):
            assert toolchain.extract_ssa(str(tmp_path), "main.Foo") is None

    def test_empty_workdir(self):
        toolchain = GoToolchain("go")
        with patch("go_ssa_viewer.toolchain.subprocess.run") as run:
            assert toolchain.extract_ssa("", "main.Foo") is None
        run.assert_not_called()

    def test_missing_workdir(self, tmp_path: Path):
        toolchain = GoToolchain("go")
        with patch("go_ssa_viewer.toolchain.subprocess.run") as run:
            assert toolchain.extract_ssa(str(tmp_path / "nope"), "main.Foo") is None
        run.assert_not_called()

    def test_output_sink_receives_raw_stderr(self, tmp_path: Path):
        seen: list[str] = []
        toolchain = GoToolchain("go", output=seen.append)
        with patch("go_ssa_viewer.toolchain.subprocess.run", return_value=_completed(SSA_OUTPUT)):
            toolchain.extract_ssa(str(tmp_path), "main.Foo")

        assert seen == ["Output of SSA for `main.Foo`:", SSA_OUTPUT]


class TestGoBinary:
    def test_env_override_reaches_options_and_toolchain(self):
        with patch.dict(os.environ, {"GO_SSA_VIEWER_GO": "go1.22"}):
            assert ViewOptions().go_binary == "go1.22"
            assert GoToolchain().go_binary == "go1.22"

    def test_defaults_to_go(self):
        with patch.dict(os.environ):
            os.environ.pop("GO_SSA_VIEWER_GO", None)
            assert ViewOptions().go_binary == "go"
            assert GoToolchain().go_binary == "go"

    def test_env_is_read_at_call_time(self, tmp_path: Path):
        with patch.dict(os.environ, {"GO_SSA_VIEWER_GO": "/opt/go/bin/go"}):
            toolchain = GoToolchain()
        with patch("go_ssa_viewer.toolchain.subprocess.run", return_value=_completed("")) as run:
            toolchain.extract_ssa(str(tmp_path), "main.Foo")

        assert run.call_args.args[0][0] == "/opt/go/bin/go"

    def test_explicit_binary_wins(self):
        with patch.dict(os.environ, {"GO_SSA_VIEWER_GO": "go1.22"}):
            assert GoToolchain("go1.21").go_binary == "go1.21"


class TestInlineDecisions:
    def test_builds_single_file(self, tmp_path: Path):
        toolchain = GoToolchain("go")
        with patch(
            "go_ssa_viewer.toolchain.subprocess.run", return_value=_completed(INLINE_DIAGNOSTICS)
        ) as run:
            decisions = toolchain.inline_decisions(str(tmp_path), "/main.go")

        assert isinstance(decisions[5], CanInline)
        assert run.call_args.args[0] == [
            "go",
            "build",
            "-gcflags=-m=2",
            "-o",
            os.devnull,
            str(tmp_path) + "/main.go",
        ]

    def test_empty_stderr(self, tmp_path: Path):
        toolchain = GoToolchain("go")
        with patch("go_ssa_viewer.toolchain.subprocess.run", return_value=_completed("")):
            assert toolchain.inline_decisions(str(tmp_path), "/main.go") == {}

    def test_missing_file_name(self, tmp_path: Path):
        toolchain = GoToolchain("go")
        with patch("go_ssa_viewer.toolchain.subprocess.run") as run:
            assert toolchain.inline_decisions(str(tmp_path), "") == {}
        run.assert_not_called()

    def test_launch_failure(self, tmp_path: Path):
        toolchain = GoToolchain("go")
        with patch("go_ssa_viewer.toolchain.subprocess.run", side_effect=PermissionError("denied")):
            assert toolchain.inline_decisions(str(tmp_path), "/main.go") == {}
