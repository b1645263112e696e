from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Iterable, Optional


class LiquidColor(Enum):
    """Liquid colors available to the generator."""

    RED = "red"
    BLUE = "blue"
    GREEN = "green"
    YELLOW = "yellow"
    PURPLE = "purple"
    ORANGE = "orange"
    PINK = "pink"
    CYAN = "cyan"
    BROWN = "brown"
    LIME = "lime"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()

    @staticmethod
    def from_name(name: str) -> "LiquidColor":
        try:
            return LiquidColor(str(name).lower())
        except ValueError as exc:
            raise ValueError(f"Unknown liquid color: {name}") from exc


@dataclass(frozen=True, slots=True)
class LiquidLayer:
    color: LiquidColor
    volume: int

    def __post_init__(self) -> None:
        if int(self.volume) < 1:
            raise ValueError(f"Layer volume must be positive, got {self.volume}")

    def combine_with(self, other: "LiquidLayer") -> "LiquidLayer":
        if other.color != self.color:
            raise ValueError("Cannot combine layers of different colors")
        return LiquidLayer(self.color, self.volume + other.volume)

    def split(self, split_volume: int) -> tuple["LiquidLayer", "LiquidLayer"]:
        """Return (remaining, split_off)."""
        if split_volume <= 0 or split_volume >= self.volume:
            raise ValueError(f"Split volume must be between 0 and {self.volume}")
        return LiquidLayer(self.color, self.volume - split_volume), LiquidLayer(self.color, split_volume)

    def to_dict(self) -> dict:
        return {"color": self.color.value, "volume": self.volume}

    @staticmethod
    def from_dict(data: dict) -> "LiquidLayer":
        return LiquidLayer(color=LiquidColor.from_name(data["color"]), volume=int(data["volume"]))


@dataclass(frozen=True, slots=True)
class Container:
    """A container of stacked liquid layers, bottom to top."""

    id: int
    capacity: int
    layers: tuple[LiquidLayer, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.layers, tuple):
            object.__setattr__(self, "layers", tuple(self.layers))
        if self.capacity < 1:
            raise ValueError(f"Container capacity must be positive, got {self.capacity}")
        volume = sum(layer.volume for layer in self.layers)
        if volume > self.capacity:
            raise ValueError(f"Container {self.id} holds {volume} units but capacity is {self.capacity}")

    @property
    def current_volume(self) -> int:
        return sum(layer.volume for layer in self.layers)

    @property
    def remaining_capacity(self) -> int:
        return self.capacity - self.current_volume

    @property
    def is_empty(self) -> bool:
        return not self.layers

    @property
    def is_full(self) -> bool:
        return self.current_volume >= self.capacity

    @property
    def is_sorted(self) -> bool:
        if not self.layers:
            return True
        first = self.layers[0].color
        return all(layer.color == first for layer in self.layers)

    @property
    def is_completed(self) -> bool:
        # Full and single-colored: too easy as a starting position.
        return not self.is_empty and self.is_full and self.is_sorted

    @property
    def top_layer(self) -> Optional[LiquidLayer]:
        return self.layers[-1] if self.layers else None

    @property
    def top_color(self) -> Optional[LiquidColor]:
        return self.layers[-1].color if self.layers else None

    def top_run(self) -> Optional[LiquidLayer]:
        """The contiguous same-color run at the top, as a single layer."""
        if not self.layers:
            return None
        color = self.layers[-1].color
        volume = 0
        for layer in reversed(self.layers):
            if layer.color != color:
                break
            volume += layer.volume
        return LiquidLayer(color, volume)

    @property
    def color_segment_count(self) -> int:
        segments = 0
        prev = None
        for layer in self.layers:
            if layer.color != prev:
                segments += 1
                prev = layer.color
        return segments

    def unique_colors(self) -> list[LiquidColor]:
        seen: list[LiquidColor] = []
        for layer in self.layers:
            if layer.color not in seen:
                seen.append(layer.color)
        return seen

    def can_accept(self, color: LiquidColor, volume: int) -> bool:
        if volume > self.remaining_capacity:
            return False
        return self.is_empty or self.top_color == color

    def with_id(self, new_id: int) -> "Container":
        return replace(self, id=new_id)

    def with_layers(self, layers: Iterable[LiquidLayer]) -> "Container":
        return replace(self, layers=tuple(layers))

    def add_liquid(self, layer: LiquidLayer) -> "Container":
        if not self.can_accept(layer.color, layer.volume):
            raise ValueError(f"Container {self.id} cannot accept {layer.volume} {layer.color.value}")
        layers = list(self.layers)
        if layers and layers[-1].color == layer.color:
            layers[-1] = layers[-1].combine_with(layer)
        else:
            layers.append(layer)
        return self.with_layers(layers)

    def remove_top(self, volume: int) -> tuple["Container", LiquidLayer]:
        """Take `volume` units of the top color off, splitting layers as needed."""
        run = self.top_run()
        if run is None or volume < 1 or volume > run.volume:
            raise ValueError(f"Cannot remove {volume} units from the top of container {self.id}")
        layers = list(self.layers)
        remaining = volume
        while remaining > 0:
            top = layers.pop()
            if top.volume <= remaining:
                remaining -= top.volume
            else:
                layers.append(LiquidLayer(top.color, top.volume - remaining))
                remaining = 0
        return self.with_layers(layers), LiquidLayer(run.color, volume)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "capacity": self.capacity,
            "layers": [layer.to_dict() for layer in self.layers],
        }

    @staticmethod
    def from_dict(data: dict) -> "Container":
        return Container(
            id=int(data["id"]),
            capacity=int(data["capacity"]),
            layers=tuple(LiquidLayer.from_dict(item) for item in data.get("layers", [])),
        )


def is_solved(containers: Iterable[Container]) -> bool:
    """Every container is empty or holds a single color."""
    return all(container.is_sorted for container in containers)


def color_volumes(containers: Iterable[Container]) -> dict[LiquidColor, int]:
    totals: dict[LiquidColor, int] = {}
    for container in containers:
        for layer in container.layers:
            totals[layer.color] = totals.get(layer.color, 0) + layer.volume
    return totals


@dataclass(frozen=True, slots=True)
class Level:
    id: int
    difficulty: int
    container_count: int
    color_count: int
    initial_containers: tuple[Container, ...]
    signature: str = ""
    tags: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.initial_containers, tuple):
            object.__setattr__(self, "initial_containers", tuple(self.initial_containers))
        if not isinstance(self.tags, tuple):
            object.__setattr__(self, "tags", tuple(self.tags))

    @property
    def empty_container_count(self) -> int:
        return sum(1 for c in self.initial_containers if c.is_empty)

    @property
    def filled_container_count(self) -> int:
        return sum(1 for c in self.initial_containers if not c.is_empty)

    @property
    def total_volume(self) -> int:
        return sum(c.current_volume for c in self.initial_containers)

    def color_volumes(self) -> dict[LiquidColor, int]:
        return color_volumes(self.initial_containers)

    @property
    def complexity_score(self) -> float:
        score = self.difficulty * 10.0 + self.color_count * 5.0
        score += (self.container_count - self.empty_container_count) * 3.0
        filled = [c for c in self.initial_containers if not c.is_empty]
        if filled:
            score += sum(c.color_segment_count for c in filled) / len(filled) * 4.0
        return score

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "difficulty": self.difficulty,
            "container_count": self.container_count,
            "color_count": self.color_count,
            "initial_containers": [c.to_dict() for c in self.initial_containers],
            "signature": self.signature,
            "tags": list(self.tags),
        }

    @staticmethod
    def from_dict(data: dict) -> "Level":
        # The stored signature is not trusted; callers recompute it.
        containers = tuple(Container.from_dict(item) for item in data.get("initial_containers", []))
        return Level(
            id=int(data["id"]),
            difficulty=int(data.get("difficulty", 1)),
            container_count=int(data.get("container_count", len(containers))),
            color_count=int(data.get("color_count", 0)),
            initial_containers=containers,
            tags=tuple(str(tag) for tag in data.get("tags", [])),
        )


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class Move:
    from_container_id: int
    to_container_id: int
    liquid_moved: LiquidLayer
    timestamp: datetime = field(default_factory=_utc_now)

    def to_dict(self) -> dict:
        return {
            "from_container_id": self.from_container_id,
            "to_container_id": self.to_container_id,
            "liquid_moved": self.liquid_moved.to_dict(),
            "timestamp": self.timestamp.isoformat(),
        }

    @staticmethod
    def from_dict(data: dict) -> "Move":
        return Move(
            from_container_id=int(data["from_container_id"]),
            to_container_id=int(data["to_container_id"]),
            liquid_moved=LiquidLayer.from_dict(data["liquid_moved"]),
            timestamp=datetime.fromisoformat(data["timestamp"]),
        )


@dataclass(frozen=True, slots=True)
class GameState:
    """Immutable snapshot of a game in progress.

    `current_move_index` points into `move_history`; -1 means no move has
    been applied. Entries after the index are available for redo.
    """

    level_id: int
    containers: tuple[Container, ...]
    initial_containers: tuple[Container, ...]
    move_history: tuple[Move, ...] = ()
    current_move_index: int = -1
    is_completed: bool = False
    is_lost: bool = False
    move_count: int = 0

    def __post_init__(self) -> None:
        for name in ("containers", "initial_containers", "move_history"):
            value = getattr(self, name)
            if not isinstance(value, tuple):
                object.__setattr__(self, name, tuple(value))

    @staticmethod
    def initial(level_id: int, containers: Iterable[Container]) -> "GameState":
        snapshot = tuple(containers)
        return GameState(
            level_id=level_id,
            containers=snapshot,
            initial_containers=snapshot,
            is_completed=is_solved(snapshot),
        )

    def get_container(self, container_id: int) -> Optional[Container]:
        for container in self.containers:
            if container.id == container_id:
                return container
        return None

    @property
    def can_undo(self) -> bool:
        return self.current_move_index >= 0

    @property
    def can_redo(self) -> bool:
        return self.current_move_index < len(self.move_history) - 1

    @property
    def effective_move_count(self) -> int:
        return self.current_move_index + 1

    def to_dict(self) -> dict:
        # is_completed / is_lost are derived and recomputed on load.
        return {
            "level_id": self.level_id,
            "containers": [c.to_dict() for c in self.containers],
            "initial_containers": [c.to_dict() for c in self.initial_containers],
            "move_history": [m.to_dict() for m in self.move_history],
            "current_move_index": self.current_move_index,
            "move_count": self.move_count,
        }

    @staticmethod
    def from_dict(data: dict) -> "GameState":
        containers = tuple(Container.from_dict(item) for item in data["containers"])
        history = tuple(Move.from_dict(item) for item in data.get("move_history", []))
        index = int(data.get("current_move_index", len(history) - 1))
        if index < -1 or index >= len(history):
            raise ValueError(f"current_move_index {index} out of range for {len(history)} moves")
        return GameState(
            level_id=int(data["level_id"]),
            containers=containers,
            initial_containers=tuple(Container.from_dict(item) for item in data["initial_containers"]),
            move_history=history,
            current_move_index=index,
            is_completed=is_solved(containers),
            is_lost=False,
            move_count=int(data.get("move_count", len(history))),
        )
