"""
Path Analyzer: named branch paths and structural diagnostics.

This module provides read-only analysis of Survey objects:
    - Enumeration of every named branch path, start to end
    - Per-path question count, completion estimate and page count
    - Survey-wide totals (questions, required questions, pages, time)
    - Block graph reachability and cycles

Every traversal carries a visited set, so analysis terminates on any
survey, including ones whose logic loops backwards.

IMPORTANT: This module does NOT modify the survey.
It only produces read-only reports.
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from sflm.config import Settings
from sflm.model import (
    Block,
    BranchingLogic,
    Destination,
    DestinationKind,
    SkipKind,
    SkipLogic,
    Survey,
    active_logic,
)
from sflm.paging import count_pages, is_interactive

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NamedBranch:
    """A confirmed, named route from a question to a block."""

    question_id: str
    owner_block_id: str
    path_name: str
    target_block_id: str


@dataclass
class SurveyPath:
    """One traced path through the survey."""

    id: str
    name: str
    block_ids: List[str] = field(default_factory=list)
    target_block_id: Optional[str] = None
    question_count: int = 0
    points: int = 0
    estimated_minutes: int = 0
    completion_time: str = "0 min"
    page_count: int = 0
    convergence_block_ids: List[str] = field(default_factory=list)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def estimate_minutes(points: int, auto_advance: bool, settings: Settings) -> int:
    """Rounded completion minutes; auto-advance shortens the estimate."""
    minutes = _round_half_up(points / settings.points_per_minute)
    if auto_advance:
        minutes = _round_half_up(minutes * settings.auto_advance_factor)
    return minutes


def format_minutes(minutes: int, question_count: int) -> str:
    if question_count == 0:
        return "0"
    return "<1" if minutes < 1 else str(minutes)


def _resolve_block_id(survey: Survey, block: Block, destination: Optional[Destination]) -> Optional[str]:
    """
    Block id a destination leads to, from the end of `block`.

    None means the survey ends. Dangling destinations fall back to the
    next block in document order.
    """
    if destination is None or destination.kind is DestinationKind.NEXT:
        return _next_block_id(survey, block)
    if destination.kind is DestinationKind.END:
        return None
    if destination.kind is DestinationKind.BLOCK:
        if survey.get_block(destination.target) is not None:
            return destination.target
        return _next_block_id(survey, block)
    owner = survey.block_of(destination.target)
    return owner.id if owner is not None else _next_block_id(survey, block)


def _next_block_id(survey: Survey, block: Block) -> Optional[str]:
    positions = survey.block_positions()
    index = positions[block.id]
    if index + 1 < len(survey.blocks):
        return survey.blocks[index + 1].id
    return None


def default_continuation(survey: Survey, block: Block) -> Optional[str]:
    """
    Block reached from `block` when no conditional rule fires.

    Checked in order:
        1. The last interactive question's simple skip, or its branching
           logic with no branches and a confirmed otherwise
        2. The block's continue_to, unless it is `next`
        3. The next block in document order (None at the last block)
    """
    interactive = [q for q in block.questions if is_interactive(q)]
    if interactive:
        last = interactive[-1]
        skip = active_logic(last.skip_logic)
        if isinstance(skip, SkipLogic) and skip.kind is SkipKind.SIMPLE and skip.confirmed and skip.destination:
            return _resolve_block_id(survey, block, skip.destination)
        branching = active_logic(last.branching_logic)
        if (
            isinstance(branching, BranchingLogic)
            and not any(b.confirmed for b in branching.branches)
            and branching.otherwise_confirmed
            and branching.otherwise is not None
        ):
            return _resolve_block_id(survey, block, branching.otherwise)

    if block.continue_to is not None and not block.continue_to.is_next:
        return _resolve_block_id(survey, block, block.continue_to)
    return _next_block_id(survey, block)


def collect_named_branches(survey: Survey) -> List[NamedBranch]:
    """Confirmed, named branches (and named otherwise routes) that target a block."""
    found: List[NamedBranch] = []
    for block in survey.blocks:
        for question in block.questions:
            branching = active_logic(question.branching_logic)
            if not isinstance(branching, BranchingLogic):
                continue
            for branch in branching.branches:
                if (
                    branch.confirmed
                    and branch.path_name
                    and branch.destination is not None
                    and branch.destination.kind is DestinationKind.BLOCK
                ):
                    found.append(NamedBranch(question.id, block.id, branch.path_name, branch.destination.target))
            otherwise = branching.otherwise
            if (
                branching.otherwise_confirmed
                and branching.otherwise_path_name
                and otherwise is not None
                and otherwise.kind is DestinationKind.BLOCK
            ):
                found.append(NamedBranch(question.id, block.id, branching.otherwise_path_name, otherwise.target))
    return found


def _walk(survey: Survey, start: Optional[str], visited: List[str], stop_at: Optional[str] = None) -> bool:
    """
    Follow default continuations from `start`, appending to `visited`.

    Stops at `stop_at` (appended) or at the end of the survey. Returns
    False if a block repeats or `stop_at` is never reached.
    """
    current = start
    while current is not None:
        if current in visited:
            return False
        visited.append(current)
        if current == stop_at:
            return True
        block = survey.get_block(current)
        if block is None:
            return False
        current = default_continuation(survey, block)
    return stop_at is None


def trace_default_path(survey: Survey) -> Optional[List[str]]:
    """Block ids visited with no conditional rule firing; None on a cycle."""
    if not survey.blocks:
        return []
    visited: List[str] = []
    if not _walk(survey, survey.blocks[0].id, visited):
        logger.warning("Default path abandoned: loops after %s", " -> ".join(visited))
        return None
    return visited


def trace_branch(survey: Survey, branch: NamedBranch) -> Optional[List[str]]:
    """
    Block ids visited along a named branch; None if the path is invalid.

    Walks the default continuation to the block owning the branch, jumps
    to the branch target, then follows the default continuation to the end.
    """
    if not survey.blocks or survey.get_block(branch.target_block_id) is None:
        return None
    visited: List[str] = []
    if not _walk(survey, survey.blocks[0].id, visited, stop_at=branch.owner_block_id):
        logger.debug("Branch '%s' owner %s not reached by default flow", branch.path_name, branch.owner_block_id)
        return None
    if not _walk(survey, branch.target_block_id, visited):
        logger.warning("Path '%s' abandoned: loops after %s", branch.path_name, " -> ".join(visited))
        return None
    return visited


def build_path(survey: Survey, path_id: str, name: str, block_ids: List[str],
               target_block_id: Optional[str], settings: Settings) -> SurveyPath:
    blocks = [survey.get_block(b) for b in block_ids]
    blocks = [b for b in blocks if b is not None]
    questions = [q for b in blocks for q in b.questions if is_interactive(q)]
    points = sum(settings.points_for(q.type) for q in questions)
    minutes = estimate_minutes(points, survey.global_auto_advance, settings)
    return SurveyPath(
        id=path_id,
        name=name,
        block_ids=list(block_ids),
        target_block_id=target_block_id,
        question_count=len(questions),
        points=points,
        estimated_minutes=minutes,
        completion_time=f"{format_minutes(minutes, len(questions))} min",
        page_count=count_pages(blocks, survey.paging_mode),
        convergence_block_ids=[b.id for b in blocks if b.is_convergence],
    )


def analyze_paths(survey: Survey, settings: Optional[Settings] = None) -> List[SurveyPath]:
    """
    Enumerate every distinct named branch path.

    Paths are deduplicated by (path name, target block). Invalid paths
    (cyclic, or whose branch is unreachable by default flow) are omitted.
    A survey without named branches yields its single default path.
    """
    settings = settings or Settings()
    paths: List[SurveyPath] = []
    seen: Set[tuple] = set()

    for branch in collect_named_branches(survey):
        key = (branch.path_name, branch.target_block_id)
        if key in seen:
            continue
        seen.add(key)
        block_ids = trace_branch(survey, branch)
        if block_ids is None:
            continue
        paths.append(build_path(
            survey, f"path-{len(paths) + 1}", branch.path_name, block_ids, branch.target_block_id, settings
        ))

    if not seen:
        block_ids = trace_default_path(survey)
        if block_ids is not None:
            paths.append(build_path(survey, "default-path", "Default Path", block_ids, None, settings))

    logger.debug("Traced %d paths from %d named branches", len(paths), len(seen))
    return paths


# =========================================================================
# SURVEY REPORT
# =========================================================================


def _find_cycles_dfs(graph: Dict[str, List[str]], start: str,
                     visited: Set[str]) -> Optional[List[str]]:
    """
    DFS to find a cycle starting from a node.

    Iterative: `stack` holds one neighbour iterator per node on `path`.
    """
    visited.add(start)
    path = [start]
    on_path = {start}
    stack = [iter(graph.get(start, []))]

    while stack:
        neighbor = next(stack[-1], None)
        if neighbor is None:
            stack.pop()
            on_path.discard(path.pop())
            continue
        if neighbor in on_path:
            return path[path.index(neighbor):] + [neighbor]
        if neighbor not in visited:
            visited.add(neighbor)
            path.append(neighbor)
            on_path.add(neighbor)
            stack.append(iter(graph.get(neighbor, [])))
    return None


def block_graph(survey: Survey) -> Dict[str, List[str]]:
    """Every block-to-block edge any rule or continuation can take."""
    outgoing: Dict[str, List[str]] = defaultdict(list)

    def add(block: Block, destination: Optional[Destination]) -> None:
        if destination is None:
            return
        target = _resolve_block_id(survey, block, destination)
        if target is not None and target not in outgoing[block.id]:
            outgoing[block.id].append(target)

    for block in survey.blocks:
        outgoing.setdefault(block.id, [])
        for question in block.questions:
            skip = active_logic(question.skip_logic)
            if isinstance(skip, SkipLogic):
                if skip.kind is SkipKind.SIMPLE and skip.confirmed:
                    add(block, skip.destination)
                for rule in skip.rules:
                    if rule.confirmed:
                        add(block, rule.destination)
            branching = active_logic(question.branching_logic)
            if isinstance(branching, BranchingLogic):
                for branch in branching.branches:
                    if branch.confirmed:
                        add(block, branch.destination)
                if branching.otherwise_confirmed:
                    add(block, branching.otherwise)
        nxt = default_continuation(survey, block)
        if nxt is not None and nxt not in outgoing[block.id]:
            outgoing[block.id].append(nxt)
    return dict(outgoing)


@dataclass
class SurveyReport:
    """Survey-wide totals and structural diagnostics."""

    survey_title: str
    total_blocks: int = 0
    total_questions: int = 0
    required_questions: int = 0
    total_pages: int = 0
    completion_time: str = "0 min"

    paths: List[SurveyPath] = field(default_factory=list)
    unreachable_blocks: Set[str] = field(default_factory=set)
    has_cycles: bool = False
    cycle_example: Optional[List[str]] = None

    warnings: List[str] = field(default_factory=list)

    def add_warning(self, msg: str) -> None:
        """Add a warning to the report."""
        if msg not in self.warnings:
            self.warnings.append(msg)


def _completion_range(survey: Survey, settings: Settings) -> str:
    questions = [q for q in survey.iter_questions() if is_interactive(q)]
    required = [q for q in questions if q.force_response]
    auto = survey.global_auto_advance

    max_points = sum(settings.points_for(q.type) for q in questions)
    max_text = format_minutes(estimate_minutes(max_points, auto, settings), len(questions))
    if not required:
        return f"{max_text} min"

    min_points = sum(settings.points_for(q.type) for q in required)
    min_text = format_minutes(estimate_minutes(min_points, auto, settings), len(required))
    if min_text == max_text:
        return f"{max_text} min"
    return f"{min_text} - {max_text} min"


def analyze_survey(survey: Survey, settings: Optional[Settings] = None) -> SurveyReport:
    """
    Perform a full read-only analysis of a Survey.

    Returns a SurveyReport with totals, traced paths and warnings.
    """
    settings = settings or Settings()
    report = SurveyReport(survey_title=survey.title)

    questions = [q for q in survey.iter_questions() if is_interactive(q)]
    report.total_blocks = len(survey.blocks)
    report.total_questions = len(questions)
    report.required_questions = sum(1 for q in questions if q.force_response)
    report.total_pages = count_pages(survey.blocks, survey.paging_mode)
    report.completion_time = _completion_range(survey, settings)
    report.paths = analyze_paths(survey, settings)

    graph = block_graph(survey)

    reachable: Set[str] = set()
    stack = [survey.blocks[0].id] if survey.blocks else []
    while stack:
        node = stack.pop()
        if node in reachable:
            continue
        reachable.add(node)
        for neighbor in graph.get(node, []):
            if neighbor not in reachable:
                stack.append(neighbor)
    report.unreachable_blocks = {b.id for b in survey.blocks if b.id not in reachable}

    visited: Set[str] = set()
    for block_id in graph:
        if block_id not in visited:
            cycle = _find_cycles_dfs(graph, block_id, visited)
            if cycle:
                report.has_cycles = True
                report.cycle_example = cycle
                break

    bids = {b.id: b.bid or b.id for b in survey.blocks}
    if report.unreachable_blocks:
        report.add_warning(
            f"Unreachable blocks: {', '.join(sorted(bids[b] for b in report.unreachable_blocks))}"
        )
    if report.has_cycles:
        report.add_warning(
            f"Cycle detected: {' -> '.join(bids.get(b, b) for b in report.cycle_example)}"
        )
    named = {b.path_name for b in collect_named_branches(survey)}
    traced = {p.name for p in report.paths}
    for name in sorted(named - traced):
        report.add_warning(f"Path '{name}' could not be traced")

    return report
