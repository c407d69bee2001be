from __future__ import annotations

import logging
import os
import subprocess
from pathlib import Path
from typing import Callable, Dict, List, Mapping, Optional

from .core import InlineDecisionMap, SSAResult, default_go_binary, find_ssa_segment, parse_inline_decisions
from .errors import ToolchainError

logger = logging.getLogger(__name__)

OutputSink = Callable[[str], None]


class GoToolchain:
    """
    Run ``go build`` with diagnostic flags and turn its stderr into models.

    1. extract_ssa: build the whole module with GOSSAFUNC=<func>+ and cut the
       function's SSA dump out of the output
    2. inline_decisions: build one file with -gcflags=-m=2 and parse the
       inlining diagnostics

    Both calls block until the compiler exits. Failures are logged and
    reported as empty results, never raised.
    """

    def __init__(
        self,
        go_binary: Optional[str] = None,
        extra_env: Optional[Mapping[str, str]] = None,
        output: Optional[OutputSink] = None,
    ) -> None:
        self.go_binary = go_binary or default_go_binary()
        self.extra_env: Dict[str, str] = dict(extra_env or {})
        self.output = output

    def extract_ssa(self, workdir: str, function_identifier: str) -> Optional[SSAResult]:
        if not workdir:
            logger.warning("No workspace directory given, cannot extract SSA for %s", function_identifier)
            return None
        try:
            stderr = self._run(
                ["build", "./..."],
                cwd=workdir,
                env={"GOSSAFUNC": function_identifier + "+"},
            )
        except ToolchainError as exc:
            logger.error("SSA build failed for %s: %s", function_identifier, exc)
            return None
        self._emit(f"Output of SSA for `{function_identifier}`:", stderr)
        result = find_ssa_segment(stderr, function_identifier)
        if result is None:
            logger.warning("No SSA output found for: %s", function_identifier)
            return None
        logger.info(
            "Extracted %d SSA lines for %s from %s",
            len(result.ssa_lines),
            function_identifier,
            result.source_file_name,
        )
        return result

    def inline_decisions(self, workdir: str, source_file_name: str) -> InlineDecisionMap:
        if not workdir or not source_file_name:
            logger.warning("Missing workspace or file name, skipping inlining decisions")
            return {}
        target = workdir.rstrip("/\\") + source_file_name
        try:
            stderr = self._run(
                ["build", "-gcflags=-m=2", "-o", os.devnull, target],
                cwd=workdir,
            )
        except ToolchainError as exc:
            logger.error("Inlining build failed for %s: %s", source_file_name, exc)
            return {}
        if not stderr:
            return {}
        self._emit(f"Output of inlining decisions for `{source_file_name}`:", stderr)
        decisions = parse_inline_decisions(stderr)
        logger.info("Parsed %d inlining decisions for %s", len(decisions), source_file_name)
        return decisions

    def _run(self, args: List[str], cwd: str, env: Optional[Mapping[str, str]] = None) -> str:
        cmd = [self.go_binary, *args]
        run_env = {**os.environ, **self.extra_env, **(env or {})}
        if not Path(cwd).is_dir():
            raise ToolchainError(f"Working directory not found: {cwd}")
        logger.debug("Running %s in %s", " ".join(cmd), cwd)
        try:
            result = subprocess.run(
                cmd,
                cwd=cwd,
                env=run_env,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
            )
        except OSError as exc:
            raise ToolchainError(f"Could not run {self.go_binary}: {exc}") from exc
        if result.returncode != 0:
            logger.debug("%s exited with rc=%d", " ".join(cmd), result.returncode)
        return result.stderr or ""

    def _emit(self, title: str, text: str) -> None:
        if self.output is None:
            return
        self.output(title)
        self.output(text)
