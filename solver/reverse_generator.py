from __future__ import annotations

import logging
import threading
from typing import Optional, Sequence

from core.state import Container, Level, LiquidColor, LiquidLayer, is_solved
from solver import level_parameters
from solver.generator import GenerationCancelled, GenerationError, LevelGenerator
from solver.search import canonical_state_key
from solver.validator import (
    has_completed_containers,
    merge_adjacent_layers,
    optimize_empty_containers,
    passes_generation_heuristic,
)

logger = logging.getLogger(__name__)

# Random picks tried per scramble move before the scramble gives up.
PICKS_PER_MOVE = 10


class ReverseLevelGenerator(LevelGenerator):
    """Builds levels by scrambling a solved board with inverse pours.

    Every scramble step undoes a pour that is legal whether or not runs may
    be split, so the solved board is always reachable again and no search is
    needed to accept a candidate. Harder levels get more scramble moves.
    """

    def scramble_moves(self, difficulty: int, color_count: int) -> int:
        return max(4, round(color_count * 3 * (1 + difficulty / 10)))

    def generate_level(
        self,
        level_id: int,
        difficulty: int,
        container_count: int,
        color_count: int,
        container_capacity: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Level:
        capacity = container_capacity if container_capacity is not None else self.config.container_capacity
        self.check_parameters(difficulty, container_count, color_count, capacity)

        moves = self.scramble_moves(difficulty, color_count)
        for attempt in range(1, self.config.max_generation_attempts + 1):
            if cancel_event is not None and cancel_event.is_set():
                raise GenerationCancelled(f"Generation of level {level_id} cancelled")

            containers = self._scramble(self._solved_board(container_count, color_count, capacity), moves)
            self._rng.shuffle(containers)
            candidate = merge_adjacent_layers(
                Level(
                    id=level_id,
                    difficulty=difficulty,
                    container_count=container_count,
                    color_count=color_count,
                    initial_containers=tuple(c.with_id(i) for i, c in enumerate(containers)),
                    tags=level_parameters.level_tags(level_id, difficulty),
                )
            )
            if is_solved(candidate.initial_containers) or has_completed_containers(candidate):
                logger.debug("Level %s scramble %d left finished containers", level_id, attempt)
                continue
            if not passes_generation_heuristic(candidate, self.config.min_empty_slots):
                logger.debug("Level %s scramble %d rejected by heuristic", level_id, attempt)
                continue
            return optimize_empty_containers(
                candidate,
                self.config.search_limits(),
                allow_partial=self.config.allow_partial_pours,
                cancel_event=cancel_event,
            )

        if cancel_event is not None and cancel_event.is_set():
            raise GenerationCancelled(f"Generation of level {level_id} cancelled")
        raise GenerationError(
            f"Failed to scramble a valid level after {self.config.max_generation_attempts} attempts: "
            f"level_id={level_id}, difficulty={difficulty}, container_count={container_count}, "
            f"color_count={color_count}, container_capacity={capacity}"
        )

    def _solved_board(self, container_count: int, color_count: int, capacity: int) -> list[Container]:
        colors = self._rng.sample(list(LiquidColor), color_count)
        board = [Container(0, capacity, (LiquidLayer(color, capacity),)) for color in colors]
        board.extend(Container(0, capacity) for _ in range(container_count - color_count))
        return board

    def _scramble(self, containers: list[Container], moves: int) -> list[Container]:
        seen = {canonical_state_key(containers)}
        made = 0
        for _ in range(moves * PICKS_PER_MOVE):
            if made >= moves:
                break
            step = self._inverse_pour(containers)
            if step is None:
                continue
            key = canonical_state_key(step)
            if key in seen:
                continue
            seen.add(key)
            containers = step
            made += 1
        return containers

    def _inverse_pour(self, containers: Sequence[Container]) -> Optional[list[Container]]:
        """Undo one random pour, or None when the random pick allows none.

        Liquid taken off `source` must leave it empty or with the same color
        on top, and lands where it forms a run of its own, so pouring it back
        moves exactly that volume.
        """
        filled = [i for i, c in enumerate(containers) if not c.is_empty]
        if not filled:
            return None
        i = self._rng.choice(filled)
        source = containers[i]
        run = source.top_run()
        most = run.volume if run.volume == source.current_volume else run.volume - 1
        if most < 1:
            return None

        targets = [
            j
            for j, c in enumerate(containers)
            if j != i and c.remaining_capacity >= 1 and (c.is_empty or c.top_color != run.color)
        ]
        if not targets:
            return None
        j = self._rng.choice(targets)
        volume = self._rng.randint(1, min(most, containers[j].remaining_capacity))

        out = list(containers)
        out[i], layer = source.remove_top(volume)
        out[j] = containers[j].add_liquid(layer)
        return out
