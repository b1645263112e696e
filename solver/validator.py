from __future__ import annotations

import logging
import threading
from dataclasses import replace
from typing import Optional

from core.state import Container, Level, LiquidLayer, is_solved
from solver.search import SearchLimits, solve_level
from solver.similarity import with_signature

logger = logging.getLogger(__name__)

MIN_OPTIMIZED_CONTAINERS = 3


def has_completed_containers(level: Level) -> bool:
    return any(c.is_completed for c in level.initial_containers)


def is_already_solved(level: Level) -> bool:
    return is_solved(level.initial_containers)


def is_structurally_valid(level: Level) -> bool:
    """Counts agree and every color totals exactly one container's capacity."""
    containers = level.initial_containers
    if not containers or level.container_count != len(containers):
        return False
    if len({c.id for c in containers}) != len(containers):
        return False
    volumes = level.color_volumes()
    if len(volumes) != level.color_count:
        return False
    capacity = containers[0].capacity
    if any(c.capacity != capacity for c in containers):
        return False
    return all(volume == capacity for volume in volumes.values())


def passes_generation_heuristic(level: Level, min_empty_slots: int = 1) -> bool:
    """Cheap filters run before the search: room to move, few pre-sorted containers."""
    free = sum(c.remaining_capacity for c in level.initial_containers)
    if free < max(1, min_empty_slots):
        return False
    sorted_filled = sum(1 for c in level.initial_containers if not c.is_empty and c.is_sorted)
    return sorted_filled <= 1


def is_level_solvable(
    level: Level,
    limits: SearchLimits = SearchLimits(),
    allow_partial: bool = True,
    cancel_event: Optional[threading.Event] = None,
) -> bool:
    if not is_structurally_valid(level) or is_already_solved(level):
        return False
    result = solve_level(level, limits, allow_partial=allow_partial, cancel_event=cancel_event)
    if result.status != "solved":
        logger.debug("Level %s not proven solvable: %s (%s)", level.id, result.status, result.stop_reason)
    return result.status == "solved"


def validate_generated_level(
    level: Level,
    limits: SearchLimits = SearchLimits(),
    allow_partial: bool = True,
    cancel_event: Optional[threading.Event] = None,
) -> bool:
    if level.container_count != len(level.initial_containers):
        return False
    if is_already_solved(level):
        return False
    if has_completed_containers(level):
        return False
    return is_level_solvable(level, limits, allow_partial=allow_partial, cancel_event=cancel_event)


def _merge_layers(container: Container) -> Container:
    merged: list[LiquidLayer] = []
    for layer in container.layers:
        if merged and merged[-1].color == layer.color:
            merged[-1] = merged[-1].combine_with(layer)
        else:
            merged.append(layer)
    return container.with_layers(merged)


def merge_adjacent_layers(level: Level) -> Level:
    return replace(level, initial_containers=tuple(_merge_layers(c) for c in level.initial_containers))


def _renumbered(level: Level, containers: list[Container]) -> Level:
    renumbered = tuple(c.with_id(i) for i, c in enumerate(containers))
    return replace(level, container_count=len(renumbered), initial_containers=renumbered)


def optimize_empty_containers(
    level: Level,
    limits: SearchLimits = SearchLimits(),
    allow_partial: bool = True,
    cancel_event: Optional[threading.Event] = None,
) -> Level:
    """Drop trailing empty containers while the level stays provably solvable.

    Stops at the first empty container whose removal loses the proof; the
    remaining ones are assumed necessary as well. Ids come out as 0..n-1.
    """
    containers = list(level.initial_containers)
    while len(containers) > MIN_OPTIMIZED_CONTAINERS:
        empty_positions = [i for i, c in enumerate(containers) if c.is_empty]
        if len(empty_positions) <= 1:
            break
        candidate = containers[: empty_positions[-1]] + containers[empty_positions[-1] + 1 :]
        if not is_level_solvable(_renumbered(level, candidate), limits, allow_partial, cancel_event):
            break
        containers = candidate

    removed = len(level.initial_containers) - len(containers)
    if removed:
        logger.debug("Removed %d surplus empty containers from level %s", removed, level.id)
    return with_signature(_renumbered(level, containers))
