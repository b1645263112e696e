from __future__ import annotations

import argparse
import json
import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

from core.moves import ValidMove, apply_valid_move, enumerate_legal_moves
from core.state import Container, GameState, Level, LiquidLayer, Move, is_solved
from solver.similarity import with_signature
from utils.logger_config import configure_logging

logger = logging.getLogger(__name__)

ContainerKey = tuple[int, tuple[tuple[str, int], ...]]
StateKey = tuple[ContainerKey, ...]


@dataclass(frozen=True, slots=True)
class SearchLimits:
    max_states: int = 10_000
    max_expansions: int = 1_000
    max_seconds: float = 2.0


@dataclass(slots=True)
class SolveResult:
    status: str
    stop_reason: str
    solution: tuple[ValidMove, ...]
    solution_states: tuple[tuple[Container, ...], ...]
    expanded_nodes: int
    generated_nodes: int
    unique_states: int
    max_frontier: int
    dead_end_nodes: int
    duplicate_states_skipped: int
    elapsed_ms: float
    max_depth: int

    @property
    def is_proven_solvable(self) -> bool:
        return self.status == "solved"


@dataclass(slots=True)
class AnalyzeResult:
    status: str
    solvable: Optional[bool]
    proven: bool
    metrics: dict
    level_id: Optional[int] = None
    signature: str = ""
    solution: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "level_id": self.level_id,
            "signature": self.signature,
            "status": self.status,
            "solvable": self.solvable,
            "proven": self.proven,
            "metrics": self.metrics,
            "solution": list(self.solution),
        }


def _container_key(container: Container) -> ContainerKey:
    runs: list[tuple[str, int]] = []
    for layer in container.layers:
        if runs and runs[-1][0] == layer.color.value:
            runs[-1] = (runs[-1][0], runs[-1][1] + layer.volume)
        else:
            runs.append((layer.color.value, layer.volume))
    return container.capacity, tuple(runs)


def canonical_state_key(containers: Sequence[Container]) -> StateKey:
    """
    Canonical key for dedup:
    - adjacent equal-color layers count as one run
    - container order is irrelevant, so keys are sorted
    """
    return tuple(sorted(_container_key(c) for c in containers))


def _reconstruct(
    goal: StateKey,
    parent: dict[StateKey, tuple[Optional[StateKey], Optional[ValidMove]]],
    states: dict[StateKey, tuple[Container, ...]],
) -> tuple[tuple[ValidMove, ...], tuple[tuple[Container, ...], ...]]:
    moves: list[ValidMove] = []
    path: list[tuple[Container, ...]] = [states[goal]]
    cur = goal
    while True:
        prev, move = parent[cur]
        if prev is None or move is None:
            break
        moves.append(move)
        path.append(states[prev])
        cur = prev
    moves.reverse()
    path.reverse()
    return tuple(moves), tuple(path)


def solve_containers(
    containers: Sequence[Container],
    limits: SearchLimits = SearchLimits(),
    allow_partial: bool = True,
    cancel_event: Optional[threading.Event] = None,
) -> SolveResult:
    """Breadth-first search for a sorted state within the given budget.

    Only `status == "solved"` is a solvability proof. Any budget stop is
    reported as "unknown".
    """

    start = time.perf_counter()
    initial = tuple(containers)
    initial_key = canonical_state_key(initial)

    if is_solved(initial):
        return SolveResult(
            status="solved",
            stop_reason="goal_reached",
            solution=(),
            solution_states=(initial,),
            expanded_nodes=0,
            generated_nodes=1,
            unique_states=1,
            max_frontier=1,
            dead_end_nodes=0,
            duplicate_states_skipped=0,
            elapsed_ms=0.0,
            max_depth=0,
        )

    parent: dict[StateKey, tuple[Optional[StateKey], Optional[ValidMove]]] = {initial_key: (None, None)}
    states: dict[StateKey, tuple[Container, ...]] = {initial_key: initial}
    depth_of: dict[StateKey, int] = {initial_key: 0}
    frontier: deque[StateKey] = deque([initial_key])

    expanded = 0
    generated = 1
    max_frontier = 1
    dead_end = 0
    duplicates = 0
    max_depth = 0
    stop_reason = ""

    def finish(status: str, reason: str, goal: Optional[StateKey] = None) -> SolveResult:
        solution: tuple[ValidMove, ...] = ()
        path: tuple[tuple[Container, ...], ...] = ()
        if goal is not None:
            solution, path = _reconstruct(goal, parent, states)
        return SolveResult(
            status=status,
            stop_reason=reason,
            solution=solution,
            solution_states=path,
            expanded_nodes=expanded,
            generated_nodes=generated,
            unique_states=len(parent),
            max_frontier=max_frontier,
            dead_end_nodes=dead_end,
            duplicate_states_skipped=duplicates,
            elapsed_ms=(time.perf_counter() - start) * 1000.0,
            max_depth=max_depth,
        )

    while frontier:
        if expanded >= limits.max_expansions:
            stop_reason = "expansion_limit"
            break
        if (time.perf_counter() - start) >= limits.max_seconds:
            stop_reason = "time_limit"
            break
        if cancel_event is not None and cancel_event.is_set():
            stop_reason = "cancelled"
            break

        key = frontier.popleft()
        state = states[key]
        depth = depth_of[key]
        moves = enumerate_legal_moves(state, allow_partial=allow_partial)
        expanded += 1
        if not moves:
            dead_end += 1
            continue

        for move in moves:
            child = apply_valid_move(state, move)
            child_key = canonical_state_key(child)
            if child_key in parent:
                duplicates += 1
                continue
            parent[child_key] = (key, move)
            states[child_key] = child
            depth_of[child_key] = depth + 1
            max_depth = max(max_depth, depth + 1)
            generated += 1
            if is_solved(child):
                return finish("solved", "goal_reached", child_key)
            if len(parent) > limits.max_states:
                stop_reason = "state_limit"
                break
            frontier.append(child_key)

        if stop_reason:
            break
        if len(frontier) > max_frontier:
            max_frontier = len(frontier)

    if stop_reason:
        logger.debug("Search stopped after %d expansions: %s", expanded, stop_reason)
        return finish("unknown", stop_reason)
    return finish("proven_unsolvable", "search_space_exhausted")


def solve_level(
    level: Level,
    limits: SearchLimits = SearchLimits(),
    allow_partial: bool = True,
    cancel_event: Optional[threading.Event] = None,
) -> SolveResult:
    return solve_containers(level.initial_containers, limits, allow_partial=allow_partial, cancel_event=cancel_event)


def find_hint(
    state: GameState,
    limits: SearchLimits = SearchLimits(),
    allow_partial: bool = False,
) -> Optional[Move]:
    """First pour of a shortest solution from `state`, or None.

    The default whole-run policy matches the interactive pour path of a
    default `GameEngine`.
    """
    result = solve_containers(state.containers, limits, allow_partial=allow_partial)
    if result.status != "solved" or not result.solution:
        return None
    first = result.solution[0]
    containers = state.containers
    return Move(
        from_container_id=containers[first.from_container].id,
        to_container_id=containers[first.to_container].id,
        liquid_moved=LiquidLayer(first.liquid_color, first.volume),
    )


def analyze_level(
    level: Level,
    limits: SearchLimits = SearchLimits(),
    allow_partial: bool = True,
) -> AnalyzeResult:
    solved = solve_level(level, limits, allow_partial=allow_partial)
    metrics = {
        "expanded_nodes": solved.expanded_nodes,
        "generated_nodes": solved.generated_nodes,
        "unique_states": solved.unique_states,
        "duplicate_states_skipped": solved.duplicate_states_skipped,
        "max_frontier": solved.max_frontier,
        "dead_end_nodes": solved.dead_end_nodes,
        "elapsed_ms": round(solved.elapsed_ms, 3),
        "max_depth": solved.max_depth,
        "reason": solved.stop_reason,
        "complexity_score": round(level.complexity_score, 3),
    }
    if solved.status == "solved":
        metrics["solution_len"] = len(solved.solution)
        return AnalyzeResult(
            level_id=level.id,
            signature=level.signature,
            status="solved",
            solvable=True,
            proven=True,
            metrics=metrics,
            solution=tuple(move.to_notation() for move in solved.solution),
        )
    if solved.status == "proven_unsolvable":
        return AnalyzeResult(
            level_id=level.id,
            signature=level.signature,
            status="proven_unsolvable",
            solvable=False,
            proven=True,
            metrics=metrics,
        )
    return AnalyzeResult(
        level_id=level.id,
        signature=level.signature,
        status="unknown",
        solvable=None,
        proven=False,
        metrics=metrics,
    )


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Analyze liquid-sort level solvability.")
    parser.add_argument("level", type=str, help="Path to a level json file (one level or a list).")
    parser.add_argument("--max-states", type=int, default=10_000, help="Visited-state limit.")
    parser.add_argument("--max-expansions", type=int, default=1_000, help="Expansion limit.")
    parser.add_argument("--max-seconds", type=float, default=2.0, help="Search time limit in seconds.")
    parser.add_argument("--whole-runs", action="store_true", help="Only allow pours of an entire top run.")
    parser.add_argument("--log-level", type=str, default="WARNING", help="Logging level.")
    parser.add_argument("--pretty", action="store_true", help="Pretty-print json output.")
    return parser.parse_args()


def main() -> None:
    args = _parse_args()
    configure_logging(args.log_level)
    limits = SearchLimits(max_states=args.max_states, max_expansions=args.max_expansions, max_seconds=args.max_seconds)

    raw = json.loads(Path(args.level).expanduser().read_text(encoding="utf-8"))
    records = raw if isinstance(raw, list) else [raw]
    payload = [
        analyze_level(with_signature(Level.from_dict(item)), limits, allow_partial=not args.whole_runs).to_dict()
        for item in records
    ]
    if len(payload) == 1:
        payload = payload[0]

    if args.pretty:
        print(json.dumps(payload, ensure_ascii=False, indent=2))
    else:
        print(json.dumps(payload, ensure_ascii=False))


if __name__ == "__main__":
    main()
