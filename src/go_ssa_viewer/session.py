from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
import logging
from typing import Callable, Dict, List, Optional, Union

from .core import (
    InlineDecision,
    InlineDecisionMap,
    RenderedLine,
    SSAResult,
    decision_text,
    render_annotated,
    rows_for_source_line,
)
from .errors import SSANotFoundError
from .toolchain import GoToolchain

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Highlight:
    line: int
    file_name: str


@dataclass(frozen=True)
class UpdateSSA:
    ssa_lines: List[str]
    inline_decisions: InlineDecisionMap
    line: Optional[int]
    file_name: str


PanelMessage = Union[Highlight, UpdateSSA]


@dataclass
class SSAPanel:
    """Rendered state of one live SSA view.

    The panel is bound to the source file the compiler attributed the
    function to; messages for any other file are ignored.
    """

    function_name: str
    source_file_name: str
    ssa_lines: List[str] = field(default_factory=list)
    decisions: InlineDecisionMap = field(default_factory=dict)
    highlight_line: Optional[int] = None
    show_decisions: bool = False
    rendered: List[RenderedLine] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.rendered = render_annotated(self.ssa_lines, self.decisions)

    @classmethod
    def from_result(cls, function_name: str, result: SSAResult, decisions: InlineDecisionMap) -> "SSAPanel":
        return cls(
            function_name=function_name,
            source_file_name=result.source_file_name,
            ssa_lines=list(result.ssa_lines),
            decisions=dict(decisions),
        )

    @property
    def title(self) -> str:
        return f"SSA: {self.function_name}"

    def handle(self, message: PanelMessage) -> bool:
        if message.file_name != self.source_file_name:
            return False
        if isinstance(message, UpdateSSA):
            self.refresh(message.ssa_lines, message.inline_decisions, message.line)
        else:
            self.highlight_line = message.line
        return True

    def refresh(self, ssa_lines: List[str], decisions: InlineDecisionMap, line: Optional[int] = None) -> None:
        self.ssa_lines = list(ssa_lines)
        self.decisions = dict(decisions)
        self.rendered = render_annotated(self.ssa_lines, self.decisions)
        self.highlight_line = line

    def toggle_decisions(self) -> bool:
        self.show_decisions = not self.show_decisions
        return self.show_decisions

    def visible_rows(self) -> List[RenderedLine]:
        if self.show_decisions:
            return list(self.rendered)
        return [row for row in self.rendered if not row.is_decision]

    def highlighted_rows(self) -> List[int]:
        return rows_for_source_line(self.visible_rows(), self.highlight_line)


class InlineHints:
    """Per-file inline-decision hints shown next to source lines."""

    def __init__(self) -> None:
        self._hints: Dict[str, InlineDecisionMap] = {}

    def is_showing(self, file_name: str) -> bool:
        return file_name in self._hints

    def toggle(self, file_name: str, compute: Callable[[], InlineDecisionMap]) -> InlineDecisionMap:
        if file_name in self._hints:
            del self._hints[file_name]
            return {}
        decisions = dict(compute())
        self._hints[file_name] = decisions
        return decisions

    def refresh(self, file_name: str, decisions: InlineDecisionMap) -> bool:
        if file_name not in self._hints:
            return False
        self._hints[file_name] = dict(decisions)
        return True

    def hints_for(self, file_name: str) -> InlineDecisionMap:
        return self._hints.get(file_name, {})

    def hint_text(self, file_name: str, line: int) -> Optional[str]:
        decision: Optional[InlineDecision] = self.hints_for(file_name).get(line)
        if decision is None:
            return None
        return decision_text(decision)


class SessionLoader:
    """Runs the compiler for one function and builds panel updates."""

    def __init__(self, toolchain: GoToolchain, workdir: str, function_name: str) -> None:
        self.toolchain = toolchain
        self.workdir = workdir
        self.function_name = function_name

    def open(self) -> Optional[SSAPanel]:
        result = self.toolchain.extract_ssa(self.workdir, self.function_name)
        if result is None:
            return None
        decisions = self.toolchain.inline_decisions(self.workdir, result.source_file_name)
        return SSAPanel.from_result(self.function_name, result, decisions)

    def require_ssa(self) -> SSAPanel:
        panel = self.open()
        if panel is None:
            raise SSANotFoundError(self.function_name)
        return panel

    def collect(self, source_file_name: str) -> tuple[Optional[SSAResult], InlineDecisionMap]:
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="go-build") as pool:
            ssa_future = pool.submit(self.toolchain.extract_ssa, self.workdir, self.function_name)
            decisions_future = pool.submit(self.toolchain.inline_decisions, self.workdir, source_file_name)
            return ssa_future.result(), decisions_future.result()

    def update_message(self, line: Optional[int], file_name: str) -> Optional[UpdateSSA]:
        result, decisions = self.collect(file_name)
        if result is None:
            logger.info("Refresh for %s produced no SSA, keeping previous view", self.function_name)
            return None
        if result.source_file_name != file_name:
            logger.info(
                "%s moved from %s to %s, keeping previous view",
                self.function_name,
                file_name,
                result.source_file_name,
            )
            return None
        return UpdateSSA(
            ssa_lines=list(result.ssa_lines),
            inline_decisions=decisions,
            line=line,
            file_name=result.source_file_name,
        )
