from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from core.state import Container, LiquidColor, is_solved


@dataclass(frozen=True, slots=True)
class ValidMove:
    """A candidate pour between two container positions."""

    from_container: int
    to_container: int
    liquid_color: LiquidColor
    volume: int

    def to_notation(self) -> str:
        return f"POUR(C{self.from_container}->C{self.to_container},{self.liquid_color.value}x{self.volume})"


def pourable_volume(source: Container, target: Container, allow_partial: bool = True) -> int:
    """Volume that would move from `source` into `target`, or 0 if none.

    With `allow_partial` the top run is capped to the target's free space;
    otherwise the whole run must fit.
    """
    run = source.top_run()
    if run is None or target.is_full:
        return 0
    if not target.is_empty and target.top_color != run.color:
        return 0
    free = target.remaining_capacity
    if run.volume <= free:
        return run.volume
    return free if allow_partial else 0


def enumerate_legal_moves(containers: Sequence[Container], allow_partial: bool = True) -> list[ValidMove]:
    moves: list[ValidMove] = []
    for i, source in enumerate(containers):
        if source.is_empty:
            continue
        color = source.top_color
        for j, target in enumerate(containers):
            if i == j:
                continue
            volume = pourable_volume(source, target, allow_partial=allow_partial)
            if volume >= 1:
                moves.append(ValidMove(i, j, color, volume))
    return moves


def has_legal_moves(containers: Sequence[Container], allow_partial: bool = True) -> bool:
    return bool(enumerate_legal_moves(containers, allow_partial=allow_partial))


def is_dead_end(containers: Sequence[Container], allow_partial: bool = True) -> bool:
    """Not solved and no pour is possible."""
    if is_solved(containers):
        return False
    return not has_legal_moves(containers, allow_partial=allow_partial)


def apply_valid_move(containers: Sequence[Container], move: ValidMove) -> tuple[Container, ...]:
    out = list(containers)
    source, layer = out[move.from_container].remove_top(move.volume)
    out[move.from_container] = source
    out[move.to_container] = out[move.to_container].add_liquid(layer)
    return tuple(out)
