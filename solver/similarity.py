"""Color-agnostic structural comparison of levels.

A level is reduced to one string per container, one letter per unit of
liquid bottom to top, with letters standing for colors. Letters are assigned
in a canonical color order so the result does not depend on which literal
colors are used or on the order of the containers.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import replace
from functools import lru_cache
from typing import Iterable, Optional, Sequence

from core.state import Container, Level, LiquidColor

logger = logging.getLogger(__name__)

SIMILARITY_THRESHOLD = 0.8
EMPTY_TOKEN = "EMPTY"


def _label(index: int) -> str:
    return chr(ord("A") + index)


def _units(container: Container) -> list[LiquidColor]:
    out: list[LiquidColor] = []
    for layer in container.layers:
        out.extend([layer.color] * layer.volume)
    return out


def _first_encounter_order(containers: Sequence[Container]) -> list[LiquidColor]:
    order: list[LiquidColor] = []
    for container in containers:
        for layer in container.layers:
            if layer.color not in order:
                order.append(layer.color)
    return order


def normalize_colors(
    containers: Sequence[Container],
    color_order: Optional[Sequence[LiquidColor]] = None,
) -> list[str]:
    """Per-container patterns, in the original container order.

    Without `color_order`, colors are lettered A, B, C... as they are first
    met scanning the containers in order.
    """
    order = list(color_order) if color_order is not None else _first_encounter_order(containers)
    letters = {color: _label(i) for i, color in enumerate(order)}
    patterns: list[str] = []
    for container in containers:
        if container.is_empty:
            patterns.append(EMPTY_TOKEN)
            continue
        patterns.append("".join(letters[layer.color] * layer.volume for layer in container.layers))
    return patterns


def _refined_color_classes(
    containers: Sequence[Container],
    partition: Optional[Sequence[Sequence[LiquidColor]]] = None,
) -> list[list[LiquidColor]]:
    """Partition colors into classes that no structural property tells apart.

    Starting from `partition` (one class of every color by default), classes
    are split by how each color sits inside the containers it appears in
    until the partition stops splitting. Class order only depends on
    structure, never on container order.
    """
    if partition is None:
        colors = _first_encounter_order(containers)
        partition = [colors] if colors else []
    colors = [color for group in partition for color in group]
    labels = {color: index for index, group in enumerate(partition) for color in group}
    unit_rows = [_units(c) for c in containers if not c.is_empty]
    class_count = len(partition)

    while True:
        fingerprints = {}
        for color in colors:
            views = []
            for units in unit_rows:
                if color not in units:
                    continue
                views.append(tuple((labels[u], u == color) for u in units))
            fingerprints[color] = (labels[color], tuple(sorted(views)))
        distinct = sorted(set(fingerprints.values()))
        labels = {color: distinct.index(fingerprints[color]) for color in colors}
        if len(distinct) == class_count:
            break
        class_count = len(distinct)

    classes: list[list[LiquidColor]] = [[] for _ in range(class_count)]
    for color in colors:
        classes[labels[color]].append(color)
    return classes


def _twin_groups(containers: Sequence[Container]) -> dict[LiquidColor, int]:
    """Group colors that can be swapped pairwise without changing the level.

    Swapping two twins maps the level onto itself, so a canonical search
    only has to try one color of each group at every branch.
    """
    rows = [tuple(_units(c)) for c in containers]
    baseline = sorted(rows)
    colors = _first_encounter_order(containers)
    group_of: dict[LiquidColor, int] = {}
    next_group = 0
    for color in colors:
        if color in group_of:
            continue
        group_of[color] = next_group
        next_group += 1
        for other in colors:
            if other in group_of:
                continue
            swap = {color: other, other: color}
            if sorted(tuple(swap.get(u, u) for u in row) for row in rows) == baseline:
                group_of[other] = group_of[color]
    return group_of


def _canonical_search(
    containers: Sequence[Container],
    partition: list[list[LiquidColor]],
    twins: dict[LiquidColor, int],
) -> list[str]:
    classes = _refined_color_classes(containers, partition)
    target = next((group for group in classes if len(group) > 1), None)
    if target is None:
        return sorted(normalize_colors(containers, [group[0] for group in classes]))

    index = classes.index(target)
    best: Optional[list[str]] = None
    tried: set[int] = set()
    for color in target:
        if twins[color] in tried:
            continue
        tried.add(twins[color])
        rest = [c for c in target if c != color]
        candidate = _canonical_search(containers, classes[:index] + [[color], rest] + classes[index + 1 :], twins)
        if best is None or candidate < best:
            best = candidate
    return best


@lru_cache(maxsize=4096)
def _canonical_patterns(containers: tuple[Container, ...]) -> tuple[str, ...]:
    """Smallest sorted pattern list over all structure-preserving letterings.

    Colors are individualized one at a time inside the first ambiguous
    class and the partition refined again after each choice.
    """
    colors = _first_encounter_order(containers)
    partition = [colors] if colors else []
    return tuple(_canonical_search(containers, partition, _twin_groups(containers)))


def normalized_pattern(level: Level) -> list[str]:
    """Sorted canonical per-container patterns of a level."""
    return list(_canonical_patterns(tuple(level.initial_containers)))


def generate_normalized_signature(level: Level) -> str:
    patterns = normalized_pattern(level)
    return f"containers:{len(level.initial_containers)}|pattern:{','.join(patterns)}"


def with_signature(level: Level) -> Level:
    """Copy of `level` carrying a freshly computed signature."""
    return replace(level, signature=generate_normalized_signature(level))


def compare_structural_patterns(level_a: Level, level_b: Level) -> float:
    """Fraction of positions at which the sorted patterns agree, in [0, 1]."""
    if len(level_a.initial_containers) != len(level_b.initial_containers):
        return 0.0
    pattern_a = normalized_pattern(level_a)
    pattern_b = normalized_pattern(level_b)
    if not pattern_a:
        return 1.0
    matches = sum(1 for a, b in zip(pattern_a, pattern_b) if a == b)
    return matches / len(pattern_a)


def are_levels_similar(level_a: Level, level_b: Level, threshold: float = SIMILARITY_THRESHOLD) -> bool:
    if level_a.container_count != level_b.container_count or level_a.color_count != level_b.color_count:
        return False
    return compare_structural_patterns(level_a, level_b) >= threshold


def is_level_similar_to_any(level: Level, existing: Iterable[Level], threshold: float = SIMILARITY_THRESHOLD) -> bool:
    return any(are_levels_similar(level, other, threshold) for other in existing)


def find_most_similar_level(level: Level, candidates: Iterable[Level]) -> tuple[Optional[Level], float]:
    best: Optional[Level] = None
    best_score = 0.0
    for candidate in candidates:
        score = compare_structural_patterns(level, candidate)
        if score > best_score:
            best, best_score = candidate, score
    return best, best_score


def count_color_segments(pattern: str) -> int:
    if not pattern or pattern == EMPTY_TOKEN:
        return 0
    segments = 1
    for prev, cur in zip(pattern, pattern[1:]):
        if cur != prev:
            segments += 1
    return segments


def _complexity_metrics(patterns: Sequence[str]) -> dict:
    empty = sum(1 for p in patterns if p == EMPTY_TOKEN)
    segments = [count_color_segments(p) for p in patterns if p != EMPTY_TOKEN]
    total = len(patterns) or 1
    return {
        "empty_ratio": empty / total,
        "single_ratio": sum(1 for s in segments if s == 1) / total,
        "multi_ratio": sum(1 for s in segments if s > 1) / total,
        "avg_segments": sum(segments) / total,
    }


def generate_detailed_signature(level: Level) -> dict:
    patterns = normalized_pattern(level)
    return {
        "container_count": level.container_count,
        "color_count": level.color_count,
        "normalized_pattern": patterns,
        "complexity": _complexity_metrics(patterns),
        "signature": generate_normalized_signature(level),
    }


def analyze_level_set_similarity(levels: Sequence[Level], threshold: float = SIMILARITY_THRESHOLD) -> dict:
    """Pairwise similarity statistics over a set of levels."""
    if len(levels) < 2:
        return {
            "total_levels": len(levels),
            "comparisons": 0,
            "avg_similarity": 0.0,
            "max_similarity": 0.0,
            "min_similarity": 0.0,
            "similar_pairs": 0,
            "uniqueness_ratio": 1.0,
        }

    scores = [compare_structural_patterns(a, b) for a, b in itertools.combinations(levels, 2)]
    similar_pairs = sum(1 for s in scores if s >= threshold)
    return {
        "total_levels": len(levels),
        "comparisons": len(scores),
        "avg_similarity": round(sum(scores) / len(scores), 4),
        "max_similarity": round(max(scores), 4),
        "min_similarity": round(min(scores), 4),
        "similar_pairs": similar_pairs,
        "uniqueness_ratio": round(1.0 - similar_pairs / len(scores), 4),
    }
