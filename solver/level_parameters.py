"""Progression curves mapping level ids and difficulty to board parameters."""

from __future__ import annotations

DEFAULT_CONTAINER_CAPACITY = 4
DEFAULT_MIN_EMPTY_SLOTS = 1
MAX_DIFFICULTY = 10

# (inclusive upper bound, value) pairs, last entry covers everything above.
_CONTAINER_COUNT_BY_DIFFICULTY = ((2, 4), (4, 5), (6, 6), (8, 7))
_COLOR_COUNT_BY_DIFFICULTY = ((2, 2), (4, 3), (6, 4), (8, 5))
_CAPACITY_BY_LEVEL_ID = ((15, 4), (25, 5), (35, 6), (45, 7))


def _step(value: int, table, above: int) -> int:
    for bound, result in table:
        if value <= bound:
            return result
    return above


def progressive_difficulty(level_index: int, start_difficulty: int) -> int:
    """Difficulty rises by one every five levels, capped at MAX_DIFFICULTY."""
    return min(MAX_DIFFICULTY, start_difficulty + level_index // 5)


def difficulty_for_level(level_id: int) -> int:
    return (level_id - 1) // 5 + 1


def container_count_for_difficulty(difficulty: int) -> int:
    return _step(difficulty, _CONTAINER_COUNT_BY_DIFFICULTY, 8)


def color_count_for_difficulty(difficulty: int, container_count: int) -> int:
    return min(_step(difficulty, _COLOR_COUNT_BY_DIFFICULTY, 6), container_count - 1)


def container_capacity_for_level(level_id: int) -> int:
    return _step(level_id, _CAPACITY_BY_LEVEL_ID, 8)


def empty_slots_for_difficulty(difficulty: int, container_capacity: int) -> int:
    if difficulty <= 3:
        return container_capacity * 2
    if difficulty <= 6:
        # One and a half containers, rounded half up.
        return (container_capacity * 3 + 1) // 2
    return container_capacity


def calculate_max_colors(
    container_count: int,
    container_capacity: int = DEFAULT_CONTAINER_CAPACITY,
    min_empty_slots: int = DEFAULT_MIN_EMPTY_SLOTS,
) -> int:
    if container_count <= 0:
        raise ValueError("Container count must be positive")
    if container_capacity <= 0:
        raise ValueError("Container capacity must be positive")
    if min_empty_slots < 0:
        raise ValueError("Minimum empty slots cannot be negative")
    max_liquid = container_count * container_capacity - min_empty_slots
    if max_liquid < container_capacity:
        return 0
    return max_liquid // container_capacity


def calculate_min_containers(
    color_count: int,
    container_capacity: int = DEFAULT_CONTAINER_CAPACITY,
    min_empty_slots: int = DEFAULT_MIN_EMPTY_SLOTS,
) -> int:
    if color_count < 0:
        raise ValueError("Color count cannot be negative")
    if container_capacity <= 0:
        raise ValueError("Container capacity must be positive")
    needed = color_count * container_capacity + min_empty_slots
    return (needed + container_capacity - 1) // container_capacity


def is_valid_configuration(
    container_count: int,
    color_count: int,
    container_capacity: int = DEFAULT_CONTAINER_CAPACITY,
    min_empty_slots: int = DEFAULT_MIN_EMPTY_SLOTS,
) -> bool:
    if container_count <= 0 or color_count < 0:
        return False
    empty_slots = (container_count - color_count) * container_capacity
    return empty_slots >= min_empty_slots


def level_tags(level_id: int, difficulty: int) -> tuple[str, ...]:
    tags: list[str] = []
    if level_id <= 5:
        tags.append("tutorial")
    if difficulty >= 8:
        tags.append("challenge")
    if difficulty <= 3:
        tags.append("easy")
    elif difficulty <= 6:
        tags.append("medium")
    else:
        tags.append("hard")
    return tuple(tags)
