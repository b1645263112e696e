from __future__ import annotations

import argparse
import json
import logging
import math
import os
import time
from concurrent.futures import ProcessPoolExecutor, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Iterable, Optional

from solver import level_parameters
from solver.generator import GenerationConfig, GenerationError, LevelGenerator
from solver.reverse_generator import ReverseLevelGenerator
from solver.search import SearchLimits, analyze_level
from utils.logger_config import configure_logging

logger = logging.getLogger(__name__)


def _default_workers() -> int:
    return max(1, (os.cpu_count() or 1) - 1)


@dataclass(frozen=True, slots=True)
class MinedLevel:
    seed: int
    status: str
    level: Optional[dict]
    signature: str
    complexity: Optional[float]
    solution_len: Optional[int]
    reason: Optional[str]
    wall_ms: float

    def to_dict(self) -> dict:
        return {
            "seed": self.seed,
            "status": self.status,
            "signature": self.signature,
            "complexity": self.complexity,
            "solution_len": self.solution_len,
            "reason": self.reason,
            "wall_ms": self.wall_ms,
            "level": self.level,
        }


def _quantile(values: list[float], q: float) -> float:
    if not values:
        raise ValueError("empty values")
    pos = (len(values) - 1) * min(1.0, max(0.0, q))
    lo = int(math.floor(pos))
    hi = int(math.ceil(pos))
    if lo == hi:
        return values[lo]
    alpha = pos - lo
    return values[lo] * (1.0 - alpha) + values[hi] * alpha


def bucket_levels(rows: Iterable[MinedLevel]) -> dict[str, list[MinedLevel]]:
    """Split solved rows into Easy/Medium/Hard thirds by complexity."""
    solved = [row for row in rows if row.status == "solved" and row.complexity is not None]
    buckets: dict[str, list[MinedLevel]] = {"Easy": [], "Medium": [], "Hard": []}
    if not solved:
        return buckets
    scores = sorted(row.complexity for row in solved)
    q33 = _quantile(scores, 1.0 / 3.0)
    q66 = _quantile(scores, 2.0 / 3.0)
    for row in sorted(solved, key=lambda r: (r.complexity, r.seed)):
        if row.complexity <= q33:
            buckets["Easy"].append(row)
        elif row.complexity <= q66:
            buckets["Medium"].append(row)
        else:
            buckets["Hard"].append(row)
    return buckets


def mine_one(seed: int, level_id: int, difficulty: int, config: GenerationConfig, reverse: bool = False) -> MinedLevel:
    t0 = time.perf_counter()
    generator_cls = ReverseLevelGenerator if reverse else LevelGenerator
    generator = generator_cls(replace(config, seed=seed))
    container_count = level_parameters.container_count_for_difficulty(difficulty)
    color_count = level_parameters.color_count_for_difficulty(difficulty, container_count)
    capacity = level_parameters.container_capacity_for_level(level_id)
    try:
        level = generator.generate_level(level_id, difficulty, container_count, color_count, capacity)
    except GenerationError as exc:
        return MinedLevel(
            seed=seed,
            status="failed",
            level=None,
            signature="",
            complexity=None,
            solution_len=None,
            reason=str(exc),
            wall_ms=round((time.perf_counter() - t0) * 1000.0, 3),
        )

    result = analyze_level(level, generator.config.search_limits(), allow_partial=config.allow_partial_pours)
    return MinedLevel(
        seed=seed,
        status=result.status,
        level=level.to_dict(),
        signature=level.signature,
        complexity=round(level.complexity_score, 3),
        solution_len=result.metrics.get("solution_len"),
        reason=result.metrics.get("reason"),
        wall_ms=round((time.perf_counter() - t0) * 1000.0, 3),
    )


def mine_levels(
    seeds: list[int],
    level_id: int,
    difficulty: int,
    config: GenerationConfig,
    workers: int = 1,
    reverse: bool = False,
) -> list[MinedLevel]:
    if workers <= 1:
        return [mine_one(seed, level_id, difficulty, config, reverse) for seed in seeds]

    try:
        with ProcessPoolExecutor(max_workers=workers) as exe:
            futures = [exe.submit(mine_one, seed, level_id, difficulty, config, reverse) for seed in seeds]
            return [fut.result() for fut in as_completed(futures)]
    except PermissionError:
        logger.warning("process pool unavailable in current environment; fallback to thread pool")

    with ThreadPoolExecutor(max_workers=workers) as exe:
        futures = [exe.submit(mine_one, seed, level_id, difficulty, config, reverse) for seed in seeds]
        return [fut.result() for fut in as_completed(futures)]


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Batch generation of seeded liquid-sort levels.")
    parser.add_argument("--start-seed", type=int, required=True, help="Start seed (inclusive).")
    parser.add_argument("--count", type=int, required=True, help="How many seeds to generate.")
    parser.add_argument("--level-id", type=int, default=1, help="Level id; sets container capacity.")
    parser.add_argument("--difficulty", type=int, default=0, help="Difficulty 1-10; defaults to the level id curve.")
    parser.add_argument(
        "--max-seconds", type=float, default=2.0, help="Solver time limit; ignored by seeded mining, which stops on counts."
    )
    parser.add_argument("--max-states", type=int, default=10_000, help="Per-level visited-state limit.")
    parser.add_argument("--max-expansions", type=int, default=1_000, help="Per-level expansion limit.")
    parser.add_argument("--reverse", action="store_true", help="Scramble solved boards instead of dealing random ones.")
    parser.add_argument("--workers", type=int, default=1, help=f"Worker processes (suggested {_default_workers()}).")
    parser.add_argument("--jsonl", type=str, default="", help="Optional output jsonl path.")
    parser.add_argument("--log-level", type=str, default="WARNING", help="Logging level.")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    configure_logging(args.log_level)
    difficulty = args.difficulty or level_parameters.difficulty_for_level(args.level_id)
    difficulty = min(level_parameters.MAX_DIFFICULTY, max(1, difficulty))
    limits = SearchLimits(max_states=args.max_states, max_expansions=args.max_expansions, max_seconds=args.max_seconds)
    config = GenerationConfig(
        max_solvability_states=limits.max_states,
        max_solvability_expansions=limits.max_expansions,
        max_solvability_seconds=limits.max_seconds,
    )

    out_path = Path(args.jsonl).expanduser() if args.jsonl else None
    if out_path is not None:
        out_path.parent.mkdir(parents=True, exist_ok=True)

    started = time.perf_counter()
    seeds = [args.start_seed + i for i in range(args.count)]
    rows = mine_levels(seeds, args.level_id, difficulty, config, workers=args.workers, reverse=args.reverse)
    rows = sorted(rows, key=lambda r: r.seed)

    for row in rows:
        if out_path is not None:
            with out_path.open("a", encoding="utf-8") as f:
                f.write(json.dumps(row.to_dict(), ensure_ascii=False) + "\n")
        print(
            f"seed={row.seed} status={row.status} reason={row.reason} wall_ms={row.wall_ms:.1f} "
            f"complexity={row.complexity} solution_len={row.solution_len}"
        )

    buckets = bucket_levels(rows)
    counts = {status: sum(1 for r in rows if r.status == status) for status in ("solved", "unknown", "failed")}
    unique = len({r.signature for r in rows if r.signature})
    total_ms = (time.perf_counter() - started) * 1000.0
    print(
        f"summary level_id={args.level_id} difficulty={difficulty} scanned={len(rows)} "
        f"solved={counts['solved']} unknown={counts['unknown']} failed={counts['failed']} "
        f"unique_signatures={unique} easy={len(buckets['Easy'])} medium={len(buckets['Medium'])} "
        f"hard={len(buckets['Hard'])} total_ms={total_ms:.1f}"
    )


if __name__ == "__main__":
    main()
