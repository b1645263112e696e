from __future__ import annotations

import logging
import math
import random
import threading
from dataclasses import dataclass
from typing import Iterable, Optional

from core.state import Container, Level, LiquidColor, LiquidLayer
from solver import level_parameters
from solver.search import SearchLimits
from solver.similarity import is_level_similar_to_any, with_signature
from solver.validator import (
    has_completed_containers as _has_completed_containers,
    is_level_solvable,
    is_structurally_valid,
    merge_adjacent_layers,
    optimize_empty_containers,
    passes_generation_heuristic,
    validate_generated_level,
)

logger = logging.getLogger(__name__)

UNIQUE_LEVEL_ATTEMPTS = 50


class GenerationError(RuntimeError):
    """No acceptable level was produced within the attempt budget."""


class GenerationCancelled(GenerationError):
    pass


@dataclass(frozen=True, slots=True)
class GenerationConfig:
    container_capacity: int = 4
    min_empty_slots: int = 1
    min_empty_containers: int = 1
    max_empty_containers: int = 3
    seed: Optional[int] = None
    max_generation_attempts: int = 50
    max_solvability_expansions: int = 1_000
    max_solvability_states: int = 10_000
    max_solvability_seconds: float = 2.0
    # Search pours cap a run to the free space instead of requiring a whole-run fit.
    allow_partial_pours: bool = True

    def search_limits(self) -> SearchLimits:
        """Search budget for the solvability proof.

        Seeded configs are bounded by state and expansion counts only, so the
        accept or reject decision never depends on how fast the machine is.
        """
        return SearchLimits(
            max_states=self.max_solvability_states,
            max_expansions=self.max_solvability_expansions,
            max_seconds=math.inf if self.seed is not None else self.max_solvability_seconds,
        )


class LevelGenerator:
    """Builds random, provably solvable levels.

    A generator owns its random source, so two generators built from the same
    seeded config produce the same sequence of levels for the same calls.
    """

    def __init__(self, config: GenerationConfig = GenerationConfig(), rng: Optional[random.Random] = None):
        self.config = config
        self._rng = rng if rng is not None else random.Random(config.seed)

    def check_parameters(self, difficulty: int, container_count: int, color_count: int, container_capacity: int) -> None:
        if container_capacity < 1:
            raise ValueError(f"Container capacity must be positive, got {container_capacity}")
        if difficulty < 1:
            raise ValueError(f"Difficulty must be positive, got {difficulty}")
        if color_count < 1:
            raise ValueError(f"Color count must be positive, got {color_count}")
        if color_count > len(LiquidColor):
            raise ValueError(f"Color count ({color_count}) cannot exceed available colors ({len(LiquidColor)})")
        if color_count >= container_count:
            raise ValueError(f"Color count ({color_count}) must be below container count ({container_count})")
        free_slots = (container_count - color_count) * container_capacity
        if free_slots < self.config.min_empty_slots:
            needed = level_parameters.calculate_min_containers(
                color_count, container_capacity, self.config.min_empty_slots
            )
            raise ValueError(
                f"Container count ({container_count}) is insufficient for {color_count} colors "
                f"with minimum {self.config.min_empty_slots} empty slots; need at least {needed} containers"
            )
        if container_count - color_count < self.config.min_empty_containers:
            raise ValueError(
                f"{container_count} containers with {color_count} colors leave fewer than "
                f"{self.config.min_empty_containers} empty containers"
            )

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

        limits = self.config.search_limits()
        partial = self.config.allow_partial_pours
        for attempt in range(1, self.config.max_generation_attempts + 1):
            if cancel_event is not None and cancel_event.is_set():
                raise GenerationCancelled(f"Generation of level {level_id} cancelled")

            containers = self._build_containers(difficulty, container_count, color_count, capacity)
            candidate = Level(
                id=level_id,
                difficulty=difficulty,
                container_count=container_count,
                color_count=color_count,
                initial_containers=containers,
                tags=level_parameters.level_tags(level_id, difficulty),
            )
            if not passes_generation_heuristic(candidate, self.config.min_empty_slots):
                logger.debug("Level %s attempt %d rejected by heuristic", level_id, attempt)
                continue
            candidate = merge_adjacent_layers(candidate)
            if not validate_generated_level(candidate, limits, allow_partial=partial, cancel_event=cancel_event):
                logger.debug("Level %s attempt %d rejected by validator", level_id, attempt)
                continue
            return optimize_empty_containers(candidate, limits, allow_partial=partial, cancel_event=cancel_event)

        if cancel_event is not None and cancel_event.is_set():
            raise GenerationCancelled(f"Generation of level {level_id} cancelled")
        raise GenerationError(
            f"Failed to generate valid level after {self.config.max_generation_attempts} attempts: "
            f"level_id={level_id}, difficulty={difficulty}, container_count={container_count}, "
            f"color_count={color_count}, container_capacity={capacity}"
        )

    def generate_unique_level(
        self,
        level_id: int,
        difficulty: int,
        container_count: int,
        color_count: int,
        container_capacity: Optional[int] = None,
        existing_levels: Iterable[Level] = (),
        cancel_event: Optional[threading.Event] = None,
    ) -> Level:
        existing = list(existing_levels)
        for _ in range(UNIQUE_LEVEL_ATTEMPTS):
            candidate = self.generate_level(
                level_id, difficulty, container_count, color_count, container_capacity, cancel_event
            )
            if not is_level_similar_to_any(candidate, existing):
                return candidate
        logger.debug("No unique candidate for level %s, accepting next one", level_id)
        return self.generate_level(level_id, difficulty, container_count, color_count, container_capacity, cancel_event)

    def generate_level_series(self, start_id: int, count: int, start_difficulty: int = 1) -> list[Level]:
        levels: list[Level] = []
        for i in range(count):
            level_id = start_id + i
            difficulty = level_parameters.progressive_difficulty(i, start_difficulty)
            container_count = level_parameters.container_count_for_difficulty(difficulty)
            color_count = level_parameters.color_count_for_difficulty(difficulty, container_count)
            capacity = level_parameters.container_capacity_for_level(level_id)
            levels.append(self.generate_level(level_id, difficulty, container_count, color_count, capacity))
        return levels

    def validate_level(self, level: Level) -> bool:
        if not is_structurally_valid(level):
            return False
        if not passes_generation_heuristic(level, self.config.min_empty_slots):
            return False
        return is_level_solvable(level, self.config.search_limits(), allow_partial=self.config.allow_partial_pours)

    def has_completed_containers(self, level: Level) -> bool:
        return _has_completed_containers(level)

    def level_signature(self, level: Level) -> str:
        return with_signature(level).signature

    def _color_runs(self, color: LiquidColor, difficulty: int, capacity: int) -> list[LiquidLayer]:
        """One container's worth of `color`, split into 1-4 positive runs."""
        if difficulty <= 2:
            run_count = self._rng.randint(1, 2)
        elif difficulty <= 5:
            run_count = self._rng.randint(2, 3)
        else:
            run_count = self._rng.randint(2, 4)
        run_count = min(run_count, capacity)

        runs: list[LiquidLayer] = []
        remaining = capacity
        for i in range(run_count - 1):
            upper = remaining - (run_count - i - 1)
            volume = self._rng.randint(1, upper)
            runs.append(LiquidLayer(color, volume))
            remaining -= volume
        runs.append(LiquidLayer(color, remaining))
        return runs

    def _empty_container_target(self, difficulty: int, container_count: int, color_count: int, capacity: int) -> int:
        wanted = level_parameters.empty_slots_for_difficulty(difficulty, capacity) // capacity
        wanted = max(self.config.min_empty_containers, wanted)
        return min(container_count - color_count, self.config.max_empty_containers, wanted)

    def _build_containers(
        self, difficulty: int, container_count: int, color_count: int, capacity: int
    ) -> tuple[Container, ...]:
        colors = self._rng.sample(list(LiquidColor), color_count)
        pending: list[LiquidLayer] = []
        for color in colors:
            pending.extend(self._color_runs(color, difficulty, capacity))
        self._rng.shuffle(pending)

        empty_count = self._empty_container_target(difficulty, container_count, color_count, capacity)
        fill: list[list[LiquidLayer]] = [[] for _ in range(container_count - empty_count)]
        free = [capacity] * len(fill)

        while pending:
            layer = pending.pop(0)
            open_slots = [i for i, room in enumerate(free) if room > 0]
            target = self._rng.choice(open_slots)
            placed = min(layer.volume, free[target])
            fill[target].append(LiquidLayer(layer.color, placed))
            free[target] -= placed
            if placed < layer.volume:
                pending.append(LiquidLayer(layer.color, layer.volume - placed))

        containers = [Container(0, capacity, tuple(layers)) for layers in fill]
        containers.extend(Container(0, capacity) for _ in range(empty_count))
        self._rng.shuffle(containers)
        return tuple(c.with_id(i) for i, c in enumerate(containers))
