from __future__ import annotations

from dataclasses import dataclass, field
import os
import re
from typing import ClassVar, Dict, List, Optional, Union

from rich.text import Text


# Max inlining budget as of go1.25
MAX_INLINE_BUDGET = 80

_CAN_INLINE_RE = re.compile(
    r"^(?P<file>.+?):(?P<line>\d+):(?P<col>\d+):\s+can inline (?P<name>\S+) with cost (?P<cost>\d+) as: (?P<text>.+)$"
)
_CANNOT_INLINE_RE = re.compile(
    r"^(?P<file>.+?):(?P<line>\d+):(?P<col>\d+): cannot inline (?P<name>\S+): (?P<reason>.*)$"
)
_INLINING_CALL_RE = re.compile(
    r"^(?P<file>.+?):(?P<line>\d+):(?P<col>\d+): inlining call to (?P<name>\S+)\s*$"
)
_COST_RE = re.compile(r"cost (\d+)")
_METHOD_RE = re.compile(r"^\(.*\)\..+$")
_CODE_LINE_RE = re.compile(r"\(\s*(\d+)\s*\)")
_SSA_END_MARKER = "dumped SSA"


@dataclass(frozen=True)
class CanInline:
    name: str
    cost: str
    as_text: str

    can_inline: ClassVar[bool] = True
    is_inlined: ClassVar[bool] = False
    max_budget: ClassVar[int] = MAX_INLINE_BUDGET


@dataclass(frozen=True)
class CannotInline:
    name: str
    cost: Optional[str] = None
    reason: str = ""

    can_inline: ClassVar[bool] = False
    is_inlined: ClassVar[bool] = False
    max_budget: ClassVar[int] = MAX_INLINE_BUDGET


@dataclass(frozen=True)
class InliningCall:
    name: str

    cost: ClassVar[Optional[str]] = None
    can_inline: ClassVar[bool] = False
    is_inlined: ClassVar[bool] = True
    max_budget: ClassVar[int] = MAX_INLINE_BUDGET


InlineDecision = Union[CanInline, CannotInline, InliningCall]
InlineDecisionMap = Dict[int, InlineDecision]


@dataclass(frozen=True)
class SSAResult:
    ssa_lines: List[str]
    source_file_name: str

    @property
    def ssa_text(self) -> str:
        return "\n".join(self.ssa_lines)


def default_go_binary() -> str:
    """Go command to run: ``GO_SSA_VIEWER_GO`` when set, else ``go`` from PATH."""
    return os.environ.get("GO_SSA_VIEWER_GO") or "go"


@dataclass
class ViewOptions:
    show_decisions: bool = False
    show_line_numbers: bool = False
    show_output: bool = False
    poll_interval: float = 1.0
    go_binary: str = field(default_factory=default_go_binary)


@dataclass(frozen=True)
class RenderedLine:
    display: str
    ssa_index: Optional[int]
    code_line: Optional[int]
    decision: Optional[InlineDecision] = None

    @property
    def is_decision(self) -> bool:
        return self.decision is not None and self.ssa_index is None


def parse_inline_decisions(text: str) -> InlineDecisionMap:
    """Map source lines to the compiler's last inlining verdict for them.

    ``text`` is the stderr of ``go build -gcflags=-m=2`` for a single file.
    Lines that are not one of the three known diagnostics are skipped, so
    build errors and other noise never fail the parse.
    """
    decisions: InlineDecisionMap = {}
    for raw in text.splitlines():
        parsed = _classify_diagnostic(raw)
        if parsed is None:
            continue
        line_number, decision = parsed
        decisions[line_number] = decision
    return decisions


def decision_text(decision: InlineDecision) -> str:
    if isinstance(decision, CanInline):
        return f"can inline {decision.name} with cost {decision.cost}"
    if isinstance(decision, InliningCall):
        return f"inlining call to {decision.name}"
    if decision.cost is None:
        return f"cannot inline {decision.name}: {decision.reason}".rstrip()
    return (
        f"cannot inline {decision.name}: function too complex: "
        f"cost {decision.cost} exceeds budget {decision.max_budget}"
    )


def bare_symbol(function_identifier: str) -> str:
    """Symbol the SSA dump header uses: methods verbatim, else the trailing name."""
    if _METHOD_RE.match(function_identifier):
        return function_identifier
    return function_identifier.split(".")[-1]


def find_ssa_segment(output: str, function_identifier: str) -> Optional[SSAResult]:
    symbol = bare_symbol(function_identifier)
    pattern = re.compile(r"genssa " + re.escape(symbol) + r"[\s\S]*?(?=" + _SSA_END_MARKER + r")")
    match = pattern.search(output)
    if match is None:
        return None
    lines = re.split(r"\r?\n", match.group(0))
    if len(lines) < 2:
        return None
    source_file_name = "/" + lines[1].replace("#", "", 1).replace("./", "", 1).strip()
    body = lines[2:]
    if body and not body[-1].strip():
        body = body[:-1]
    return SSAResult(ssa_lines=body, source_file_name=source_file_name)


def extract_code_line(line: str) -> Optional[int]:
    match = _CODE_LINE_RE.search(line.strip())
    if match is None:
        return None
    return int(match.group(1))


def render_annotated(ssa_lines: List[str], decisions: InlineDecisionMap) -> List[RenderedLine]:
    """Interleave decision rows with the SSA lines they describe.

    A decision is emitted once per source line, right before the first SSA
    line that references it.
    """
    rendered: List[RenderedLine] = []
    seen: set[int] = set()
    for idx, line in enumerate(ssa_lines):
        code_line = extract_code_line(line)
        decision = decisions.get(code_line) if code_line is not None else None
        if decision is not None and code_line not in seen:
            rendered.append(
                RenderedLine(display=decision_text(decision), ssa_index=None, code_line=code_line, decision=decision)
            )
            seen.add(code_line)
        rendered.append(RenderedLine(display=line, ssa_index=idx, code_line=code_line))
    return rendered


def rows_for_source_line(rendered: List[RenderedLine], line: Optional[int]) -> List[int]:
    if line is None:
        return []
    needle = f"({line})"
    return [idx for idx, row in enumerate(rendered) if not row.is_decision and needle in row.display]


def row_text(row: RenderedLine, highlighted: bool = False, show_line_numbers: bool = False) -> Text:
    if row.is_decision:
        text = Text(f"  ▸ {row.display}", style=_decision_style(row.decision))
        if show_line_numbers:
            text = Text("      ") + text
        return text
    text = Text(row.display)
    for match in _CODE_LINE_RE.finditer(row.display):
        text.stylize("cyan", match.start(), match.end())
    if show_line_numbers and row.ssa_index is not None:
        text = Text(f"{row.ssa_index + 1:5d} ", style="dim") + text
    if highlighted:
        text.stylize("on rgb(60,110,100)", 0, len(text))
    return text


def _classify_diagnostic(line: str) -> Optional[tuple[int, InlineDecision]]:
    match = _CAN_INLINE_RE.match(line)
    if match:
        decision: InlineDecision = CanInline(
            name=match.group("name"),
            cost=match.group("cost"),
            as_text=match.group("text"),
        )
        return int(match.group("line")), decision
    match = _CANNOT_INLINE_RE.match(line)
    if match:
        reason = match.group("reason").strip()
        cost_match = _COST_RE.search(reason)
        decision = CannotInline(
            name=match.group("name"),
            cost=cost_match.group(1) if cost_match else None,
            reason=reason,
        )
        return int(match.group("line")), decision
    match = _INLINING_CALL_RE.match(line)
    if match:
        return int(match.group("line")), InliningCall(name=match.group("name"))
    return None


def _decision_style(decision: Optional[InlineDecision]) -> str:
    if decision is None:
        return ""
    if decision.can_inline:
        return "green"
    if decision.is_inlined:
        return "light_green"
    return "yellow"
