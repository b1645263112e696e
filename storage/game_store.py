from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

from core.engine import GameEngine
from core.state import GameState, Level
from solver.similarity import with_signature

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).with_name("data")
GAME_STATE_FILE = "game_state.json"
PROGRESS_FILE = "progress.json"
LEVEL_PREFIX = "level_"
LEVEL_SUFFIX = ".json"


def default_progress() -> dict:
    return {
        "current_level": 1,
        "unlocked_levels": [1],
        "completed_levels": [],
        "best_moves": {},
    }


def _sanitize_progress(data) -> dict:
    out = default_progress()
    if not isinstance(data, dict):
        return out

    def _ids(values) -> list[int]:
        ids = set()
        for value in values if isinstance(values, list) else []:
            try:
                number = int(value)
            except (TypeError, ValueError):
                continue
            if number >= 1:
                ids.add(number)
        return sorted(ids)

    out["unlocked_levels"] = sorted(set(_ids(data.get("unlocked_levels"))) | {1})
    out["completed_levels"] = _ids(data.get("completed_levels"))
    best = data.get("best_moves")
    if isinstance(best, dict):
        for key, value in best.items():
            try:
                level_id, moves = int(key), int(value)
            except (TypeError, ValueError):
                continue
            if level_id >= 1 and moves >= 0:
                out["best_moves"][str(level_id)] = moves
    try:
        current = int(data.get("current_level", 1))
    except (TypeError, ValueError):
        current = 1
    out["current_level"] = current if current in out["unlocked_levels"] else 1
    return out


def record_level_completed(progress: dict, level_id: int, move_count: int) -> dict:
    """New progress with `level_id` completed and the next level unlocked."""
    data = _sanitize_progress(progress)
    data["completed_levels"] = sorted(set(data["completed_levels"]) | {level_id})
    data["unlocked_levels"] = sorted(set(data["unlocked_levels"]) | {level_id + 1})
    key = str(level_id)
    best = data["best_moves"].get(key)
    if best is None or move_count < best:
        data["best_moves"][key] = move_count
    data["current_level"] = level_id + 1
    return data


class GameStore:
    """JSON persistence for game snapshots, progress and generated levels.

    Any storage failure switches the store to an in-memory fallback for the
    rest of the session; `is_degraded` reports it.
    """

    def __init__(self, root: Optional[Path] = None, engine: Optional[GameEngine] = None):
        self.root = Path(root) if root is not None else DATA_DIR
        self.engine = engine if engine is not None else GameEngine()
        self._memory: dict[str, dict] = {}
        self._degraded_reason: Optional[str] = None

    @property
    def is_degraded(self) -> bool:
        return self._degraded_reason is not None

    @property
    def degraded_reason(self) -> Optional[str]:
        return self._degraded_reason

    def _degrade(self, action: str, name: str, exc: Exception) -> None:
        if self._degraded_reason is None:
            logger.warning("Storage %s of %s failed, progress will not be saved: %s", action, name, exc)
        self._degraded_reason = f"{action} {name}: {exc}"

    def _write(self, name: str, payload: dict) -> bool:
        self._memory[name] = payload
        if self.is_degraded:
            return False
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            (self.root / name).write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
            return True
        except OSError as exc:
            self._degrade("write", name, exc)
            return False

    def _read(self, name: str) -> Optional[dict]:
        if self.is_degraded:
            return self._memory.get(name)
        path = self.root / name
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            self._degrade("read", name, exc)
            return self._memory.get(name)
        if not isinstance(data, dict):
            self._degrade("read", name, ValueError("record is not an object"))
            return self._memory.get(name)
        return data

    def _delete(self, name: str) -> bool:
        self._memory.pop(name, None)
        if self.is_degraded:
            return True
        path = self.root / name
        try:
            if path.exists():
                path.unlink()
            return True
        except OSError as exc:
            self._degrade("delete", name, exc)
            return False

    # -- game state --------------------------------------------------------

    def save_game_state(self, state: GameState) -> bool:
        return self._write(GAME_STATE_FILE, state.to_dict())

    def load_game_state(self) -> Optional[GameState]:
        data = self._read(GAME_STATE_FILE)
        if data is None:
            return None
        try:
            state = GameState.from_dict(data)
        except (KeyError, TypeError, ValueError) as exc:
            self._degrade("decode", GAME_STATE_FILE, exc)
            return None
        return self.engine.refresh_status(state)

    def has_saved_game(self) -> bool:
        if self.is_degraded:
            return GAME_STATE_FILE in self._memory
        path = self.root / GAME_STATE_FILE
        return path.exists() and path.is_file()

    def clear_game_state(self) -> bool:
        return self._delete(GAME_STATE_FILE)

    # -- progress ----------------------------------------------------------

    def load_progress(self) -> dict:
        return _sanitize_progress(self._read(PROGRESS_FILE))

    def save_progress(self, progress: dict) -> bool:
        return self._write(PROGRESS_FILE, _sanitize_progress(progress))

    def complete_level(self, level_id: int, move_count: int) -> dict:
        progress = record_level_completed(self.load_progress(), level_id, move_count)
        self.save_progress(progress)
        return progress

    # -- levels ------------------------------------------------------------

    def _level_name(self, level_id: int) -> str:
        return f"{LEVEL_PREFIX}{int(level_id)}{LEVEL_SUFFIX}"

    def save_level(self, level: Level) -> bool:
        return self._write(self._level_name(level.id), level.to_dict())

    def load_level(self, level_id: int) -> Optional[Level]:
        name = self._level_name(level_id)
        data = self._read(name)
        if data is None:
            return None
        try:
            level = Level.from_dict(data)
        except (KeyError, TypeError, ValueError) as exc:
            self._degrade("decode", name, exc)
            return None
        return with_signature(level)
