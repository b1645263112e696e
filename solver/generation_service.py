from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Optional

from core.state import Level, LiquidColor
from solver import level_parameters
from solver.generator import GenerationCancelled, GenerationError, LevelGenerator
from solver.similarity import analyze_level_set_similarity, is_level_similar_to_any

logger = logging.getLogger(__name__)

MAX_UNIQUE_GENERATION_ATTEMPTS = 50
MIN_SESSION_HISTORY_SIZE = 10
MAX_SESSION_HISTORY_SIZE = 100


class GenerationService:
    """Generates levels that are structurally distinct within one session.

    Session history is owned by the service and every read or write of it
    goes through `_history_lock`. Generator calls are serialized because the
    generator owns a single random source.
    """

    def __init__(
        self,
        generator: Optional[LevelGenerator] = None,
        min_history_size: int = MIN_SESSION_HISTORY_SIZE,
        max_history_size: int = MAX_SESSION_HISTORY_SIZE,
        max_attempts: int = MAX_UNIQUE_GENERATION_ATTEMPTS,
        max_workers: int = 1,
    ):
        if min_history_size < 0 or max_history_size < max(1, min_history_size):
            raise ValueError(f"Invalid session history bounds: min={min_history_size}, max={max_history_size}")
        self._generator = generator if generator is not None else LevelGenerator()
        self.min_history_size = min_history_size
        self.max_history_size = max_history_size
        self.max_attempts = max_attempts
        self._max_workers = max(1, max_workers)
        self._history: list[Level] = []
        self._history_lock = threading.Lock()
        self._generator_lock = threading.Lock()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._pending: dict[Future, threading.Event] = {}
        self._pending_lock = threading.Lock()

    # -- history -----------------------------------------------------------

    @property
    def session_history(self) -> tuple[Level, ...]:
        with self._history_lock:
            return tuple(self._history)

    @property
    def session_signatures(self) -> tuple[str, ...]:
        return tuple(level.signature for level in self.session_history)

    @property
    def session_level_count(self) -> int:
        with self._history_lock:
            return len(self._history)

    @property
    def is_session_history_full(self) -> bool:
        return self.session_level_count >= self.max_history_size

    def clear_session_history(self) -> None:
        with self._history_lock:
            self._history.clear()
        logger.info("Session history cleared")

    def _trim_session_history(self) -> bool:
        with self._history_lock:
            if len(self._history) <= self.min_history_size:
                return False
            del self._history[: len(self._history) - self.min_history_size]
        logger.info("Session history trimmed to %d levels", self.min_history_size)
        return True

    def _record(self, level: Level) -> None:
        with self._history_lock:
            self._history.append(level)
            overflow = len(self._history) - self.max_history_size
            if overflow > 0:
                del self._history[:overflow]

    def _is_unique(self, candidate: Level) -> bool:
        return not is_level_similar_to_any(candidate, self.session_history)

    # -- generation --------------------------------------------------------

    def _generate(
        self,
        level_id: int,
        difficulty: int,
        container_count: int,
        color_count: int,
        capacity: int,
        cancel_event: Optional[threading.Event],
    ) -> Level:
        with self._generator_lock:
            return self._generator.generate_level(
                level_id, difficulty, container_count, color_count, capacity, cancel_event=cancel_event
            )

    def _try_generate(self, *args) -> Optional[Level]:
        try:
            return self._generate(*args)
        except GenerationCancelled:
            raise
        except GenerationError as exc:
            logger.debug("Candidate generation failed: %s", exc)
            return None

    def generate_next_level(
        self,
        level_id: int,
        difficulty: int,
        container_count: int,
        color_count: int,
        cancel_event: Optional[threading.Event] = None,
    ) -> Level:
        capacity = level_parameters.container_capacity_for_level(level_id)
        self._generator.check_parameters(difficulty, container_count, color_count, capacity)
        request = (level_id, difficulty, container_count, color_count, capacity, cancel_event)

        level: Optional[Level] = None
        for _ in range(self.max_attempts):
            candidate = self._try_generate(*request)
            if candidate is not None and self._is_unique(candidate):
                level = candidate
                break

        if level is None:
            level = self._handle_uniqueness_failure(*request)
        self._record(level)
        return level

    def _variations(self, container_count: int, color_count: int, capacity: int) -> list[tuple[int, int]]:
        raw = []
        if container_count < 8:
            raw.append((container_count + 1, color_count))
        if container_count > 4:
            raw.append((container_count - 1, max(2, color_count - 1)))
        if color_count < container_count - 1:
            raw.append((container_count, color_count + 1))
        if color_count > 2:
            raw.append((container_count, color_count - 1))

        out = []
        min_slots = self._generator.config.min_empty_slots
        for containers, colors in raw:
            if colors >= containers or colors > len(LiquidColor):
                continue
            if not level_parameters.is_valid_configuration(containers, colors, capacity, min_slots):
                continue
            out.append((containers, colors))
        return out

    def _handle_uniqueness_failure(
        self,
        level_id: int,
        difficulty: int,
        container_count: int,
        color_count: int,
        capacity: int,
        cancel_event: Optional[threading.Event],
    ) -> Level:
        logger.warning("No unique level %s after %d attempts, relaxing", level_id, self.max_attempts)

        if self._trim_session_history():
            candidate = self._try_generate(level_id, difficulty, container_count, color_count, capacity, cancel_event)
            if candidate is not None and self._is_unique(candidate):
                return candidate

        for containers, colors in self._variations(container_count, color_count, capacity):
            candidate = self._try_generate(level_id, difficulty, containers, colors, capacity, cancel_event)
            if candidate is not None and self._is_unique(candidate):
                logger.info("Level %s generated with relaxed parameters (%d, %d)", level_id, containers, colors)
                return candidate

        self.clear_session_history()
        return self._generate(level_id, difficulty, container_count, color_count, capacity, cancel_event)

    def generate_level_series(self, start_id: int, count: int, start_difficulty: int = 1) -> list[Level]:
        levels = []
        for i in range(count):
            difficulty = level_parameters.progressive_difficulty(i, start_difficulty)
            container_count = level_parameters.container_count_for_difficulty(difficulty)
            color_count = level_parameters.color_count_for_difficulty(difficulty, container_count)
            levels.append(self.generate_next_level(start_id + i, difficulty, container_count, color_count))
        return levels

    # -- background --------------------------------------------------------

    def submit_next_level(self, level_id: int, difficulty: int, container_count: int, color_count: int) -> Future:
        """Generate on a worker thread; `cancel_pending()` aborts the request."""
        event = threading.Event()
        with self._pending_lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="level-gen")
            future = self._executor.submit(
                self.generate_next_level, level_id, difficulty, container_count, color_count, event
            )
            self._pending[future] = event
        future.add_done_callback(self._forget)
        return future

    def _forget(self, future: Future) -> None:
        with self._pending_lock:
            self._pending.pop(future, None)

    def cancel_pending(self) -> int:
        with self._pending_lock:
            pending = list(self._pending.items())
        for future, event in pending:
            event.set()
            future.cancel()
        if pending:
            logger.info("Cancelled %d pending generation requests", len(pending))
        return len(pending)

    def shutdown(self, wait: bool = True) -> None:
        self.cancel_pending()
        with self._pending_lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait)

    # -- statistics --------------------------------------------------------

    def session_statistics(self) -> dict:
        levels = self.session_history
        if not levels:
            return {
                "total_levels": 0,
                "avg_difficulty": 0.0,
                "avg_containers": 0.0,
                "avg_colors": 0.0,
                "difficulty_range": [0, 0],
                "container_range": [0, 0],
                "color_range": [0, 0],
                "uniqueness_analysis": {},
            }
        difficulties = [level.difficulty for level in levels]
        containers = [level.container_count for level in levels]
        colors = [level.color_count for level in levels]
        return {
            "total_levels": len(levels),
            "avg_difficulty": round(sum(difficulties) / len(levels), 4),
            "avg_containers": round(sum(containers) / len(levels), 4),
            "avg_colors": round(sum(colors) / len(levels), 4),
            "difficulty_range": [min(difficulties), max(difficulties)],
            "container_range": [min(containers), max(containers)],
            "color_range": [min(colors), max(colors)],
            "uniqueness_analysis": analyze_level_set_similarity(levels),
        }

    def generation_metrics(self) -> dict:
        return {
            "session_levels": self.session_level_count,
            "max_session_size": self.max_history_size,
            "min_session_size": self.min_history_size,
            "max_attempts": self.max_attempts,
            "pending_requests": len(self._pending),
        }
