import configparser
import logging
from dataclasses import asdict
from pathlib import Path

from core.state import LiquidColor
from solver.generator import GenerationConfig

logger = logging.getLogger(__name__)

SETTINGS_PATH = Path(__file__).with_name("settings.ini")
SECTION = "generation"

_DEFAULT_CONFIG = GenerationConfig()

DEFAULT_SETTINGS = {
    "container_capacity": str(_DEFAULT_CONFIG.container_capacity),
    "min_empty_slots": str(_DEFAULT_CONFIG.min_empty_slots),
    "min_empty_containers": str(_DEFAULT_CONFIG.min_empty_containers),
    "max_empty_containers": str(_DEFAULT_CONFIG.max_empty_containers),
    "seed": "",
    "max_generation_attempts": str(_DEFAULT_CONFIG.max_generation_attempts),
    "max_solvability_expansions": str(_DEFAULT_CONFIG.max_solvability_expansions),
    "max_solvability_states": str(_DEFAULT_CONFIG.max_solvability_states),
    "max_solvability_seconds": str(_DEFAULT_CONFIG.max_solvability_seconds),
    "allow_partial_pours": "true",
}

# name -> (lowest, highest) accepted value
_INT_RANGES = {
    "container_capacity": (1, 16),
    "min_empty_slots": (0, 64),
    "min_empty_containers": (0, len(LiquidColor)),
    "max_empty_containers": (1, len(LiquidColor)),
    "max_generation_attempts": (1, 10_000),
    "max_solvability_expansions": (1, 10_000_000),
    "max_solvability_states": (1, 10_000_000),
}


def _as_int(value, default: str, low: int, high: int) -> str:
    try:
        number = int(str(value).strip())
    except ValueError:
        return default
    if number < low or number > high:
        return default
    return str(number)


def _sanitize(settings):
    data = dict(DEFAULT_SETTINGS)
    data.update({k: v for k, v in settings.items() if k in DEFAULT_SETTINGS and v is not None})

    for name, (low, high) in _INT_RANGES.items():
        data[name] = _as_int(data[name], DEFAULT_SETTINGS[name], low, high)
    if int(data["max_empty_containers"]) < int(data["min_empty_containers"]):
        data["min_empty_containers"] = DEFAULT_SETTINGS["min_empty_containers"]
        data["max_empty_containers"] = DEFAULT_SETTINGS["max_empty_containers"]

    seed = str(data["seed"]).strip()
    if seed in ("", "None"):
        data["seed"] = ""
    else:
        try:
            data["seed"] = str(int(seed))
        except ValueError:
            data["seed"] = ""

    try:
        seconds = float(data["max_solvability_seconds"])
    except ValueError:
        seconds = float(DEFAULT_SETTINGS["max_solvability_seconds"])
    if not 0.0 < seconds <= 600.0:
        seconds = float(DEFAULT_SETTINGS["max_solvability_seconds"])
    data["max_solvability_seconds"] = str(seconds)

    partial = str(data["allow_partial_pours"]).strip().lower()
    if partial in ("1", "true", "yes", "on"):
        data["allow_partial_pours"] = "true"
    elif partial in ("0", "false", "no", "off"):
        data["allow_partial_pours"] = "false"
    else:
        data["allow_partial_pours"] = DEFAULT_SETTINGS["allow_partial_pours"]
    return data


def load_settings():
    parser = configparser.ConfigParser()
    if not SETTINGS_PATH.exists():
        return dict(DEFAULT_SETTINGS)
    try:
        parser.read(SETTINGS_PATH, encoding="utf-8")
    except (OSError, configparser.Error) as exc:
        logger.warning("Could not read %s: %s", SETTINGS_PATH, exc)
        return dict(DEFAULT_SETTINGS)
    if SECTION not in parser:
        return dict(DEFAULT_SETTINGS)
    return _sanitize(dict(parser[SECTION]))


def save_settings(settings):
    data = _sanitize(settings)
    parser = configparser.ConfigParser()
    parser[SECTION] = data
    SETTINGS_PATH.parent.mkdir(parents=True, exist_ok=True)
    with SETTINGS_PATH.open("w", encoding="utf-8") as f:
        parser.write(f)


def settings_to_config(settings) -> GenerationConfig:
    data = _sanitize(settings)
    return GenerationConfig(
        container_capacity=int(data["container_capacity"]),
        min_empty_slots=int(data["min_empty_slots"]),
        min_empty_containers=int(data["min_empty_containers"]),
        max_empty_containers=int(data["max_empty_containers"]),
        seed=int(data["seed"]) if data["seed"] else None,
        max_generation_attempts=int(data["max_generation_attempts"]),
        max_solvability_expansions=int(data["max_solvability_expansions"]),
        max_solvability_states=int(data["max_solvability_states"]),
        max_solvability_seconds=float(data["max_solvability_seconds"]),
        allow_partial_pours=data["allow_partial_pours"] == "true",
    )


def config_to_settings(config: GenerationConfig):
    raw = {key: str(value) for key, value in asdict(config).items()}
    raw["seed"] = "" if config.seed is None else str(config.seed)
    raw["allow_partial_pours"] = "true" if config.allow_partial_pours else "false"
    return _sanitize(raw)


def load_generation_config() -> GenerationConfig:
    return settings_to_config(load_settings())


def save_generation_config(config: GenerationConfig):
    save_settings(config_to_settings(config))
