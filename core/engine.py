from __future__ import annotations

import logging
from dataclasses import replace
from typing import Iterable, Optional, Sequence

from core.moves import enumerate_legal_moves
from core.pour import (
    ColorMismatch,
    ContainerFull,
    EmptySource,
    InsufficientCapacity,
    InvalidContainer,
    PourResult,
    PourSuccess,
    SameContainer,
)
from core.state import Container, GameState, LiquidLayer, Move, is_solved

logger = logging.getLogger(__name__)


class GameEngine:
    """Applies player pours to immutable game snapshots.

    By default a pour moves the whole contiguous top run or nothing. With
    `allow_partial_pours` a run that does not fit is capped to the free space
    of the target instead of being rejected.
    """

    def __init__(self, allow_partial_pours: bool = False):
        self.allow_partial_pours = allow_partial_pours

    def initialize_level(self, level_id: int, containers: Iterable[Container]) -> GameState:
        state = GameState.initial(level_id, containers)
        return self.refresh_status(state)

    def reset_level(self, state: GameState) -> GameState:
        return self.initialize_level(state.level_id, state.initial_containers)

    def validate_pour(self, state: GameState, from_id: int, to_id: int) -> PourResult:
        if from_id == to_id:
            return SameContainer()
        source = state.get_container(from_id)
        if source is None:
            return InvalidContainer(from_id)
        target = state.get_container(to_id)
        if target is None:
            return InvalidContainer(to_id)
        if source.is_empty:
            return EmptySource()
        if target.is_full:
            return ContainerFull()
        run = source.top_run()
        if not target.is_empty and target.top_color != run.color:
            return ColorMismatch(run.color, target.top_color)

        volume = run.volume
        free = target.remaining_capacity
        if volume > free:
            if not self.allow_partial_pours:
                return InsufficientCapacity(to_id, volume, free)
            volume = free
        return PourSuccess(Move(from_id, to_id, LiquidLayer(run.color, volume)))

    def attempt_pour(self, state: GameState, from_id: int, to_id: int) -> PourResult:
        result = self.validate_pour(state, from_id, to_id)
        if not result.is_success:
            logger.debug("Rejected pour %s -> %s: %s", from_id, to_id, result.message)
        return result

    def execute_pour(self, state: GameState, from_id: int, to_id: int) -> GameState:
        result = self.validate_pour(state, from_id, to_id)
        if not isinstance(result, PourSuccess):
            raise ValueError(f"Cannot execute invalid pour {from_id} -> {to_id}: {result.message}")

        containers = _apply_move(state.containers, result.move)
        # A new pour discards any redo entries.
        history = state.move_history[: state.current_move_index + 1] + (result.move,)
        new_state = replace(
            state,
            containers=containers,
            move_history=history,
            current_move_index=state.current_move_index + 1,
            move_count=state.move_count + 1,
        )
        return self.refresh_status(new_state)

    def undo_last_move(self, state: GameState) -> Optional[GameState]:
        if not state.can_undo:
            return None
        index = state.current_move_index - 1
        containers = _replay(state.initial_containers, state.move_history[: index + 1])
        return self.refresh_status(replace(state, containers=containers, current_move_index=index))

    def redo_next_move(self, state: GameState) -> Optional[GameState]:
        if not state.can_redo:
            return None
        index = state.current_move_index + 1
        containers = _apply_move(state.containers, state.move_history[index])
        return self.refresh_status(replace(state, containers=containers, current_move_index=index))

    def check_win_condition(self, state: GameState) -> bool:
        return is_solved(state.containers)

    def has_legal_moves(self, state: GameState) -> bool:
        return bool(enumerate_legal_moves(state.containers, allow_partial=self.allow_partial_pours))

    def check_loss_condition(self, state: GameState) -> bool:
        if self.check_win_condition(state):
            return False
        return not self.has_legal_moves(state)

    def refresh_status(self, state: GameState) -> GameState:
        completed = self.check_win_condition(state)
        lost = not completed and not self.has_legal_moves(state)
        if completed == state.is_completed and lost == state.is_lost:
            return state
        if lost:
            logger.debug("Level %s has no legal pours left", state.level_id)
        return replace(state, is_completed=completed, is_lost=lost)


def _index_by_id(containers: Sequence[Container], container_id: int) -> int:
    for idx, container in enumerate(containers):
        if container.id == container_id:
            return idx
    raise ValueError(f"Container {container_id} not found")


def _apply_move(containers: Sequence[Container], move: Move) -> tuple[Container, ...]:
    out = list(containers)
    src = _index_by_id(out, move.from_container_id)
    dst = _index_by_id(out, move.to_container_id)
    out[src], layer = out[src].remove_top(move.liquid_moved.volume)
    out[dst] = out[dst].add_liquid(layer)
    return tuple(out)


def _replay(initial: Sequence[Container], moves: Iterable[Move]) -> tuple[Container, ...]:
    containers = tuple(initial)
    for move in moves:
        containers = _apply_move(containers, move)
    return containers
