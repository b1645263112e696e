from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from core.state import LiquidColor, Move


@dataclass(frozen=True, slots=True)
class PourSuccess:
    move: Move

    @property
    def is_success(self) -> bool:
        return True

    @property
    def message(self) -> str:
        layer = self.move.liquid_moved
        return f"Poured {layer.volume} {layer.color.value}"


@dataclass(frozen=True, slots=True)
class PourFailure:
    """Base of the expected, non-exceptional pour rejections."""

    @property
    def is_success(self) -> bool:
        return False

    @property
    def message(self) -> str:
        return "Invalid pour"


@dataclass(frozen=True, slots=True)
class SameContainer(PourFailure):
    @property
    def message(self) -> str:
        return "Cannot pour a container into itself"


@dataclass(frozen=True, slots=True)
class InvalidContainer(PourFailure):
    container_id: int

    @property
    def message(self) -> str:
        return f"Container {self.container_id} does not exist"


@dataclass(frozen=True, slots=True)
class EmptySource(PourFailure):
    @property
    def message(self) -> str:
        return "Source container is empty"


@dataclass(frozen=True, slots=True)
class ContainerFull(PourFailure):
    @property
    def message(self) -> str:
        return "Target container is full"


@dataclass(frozen=True, slots=True)
class ColorMismatch(PourFailure):
    source_color: LiquidColor
    target_color: Optional[LiquidColor]

    @property
    def message(self) -> str:
        target = self.target_color.value if self.target_color is not None else "empty"
        return f"Cannot pour {self.source_color.value} onto {target}"


@dataclass(frozen=True, slots=True)
class InsufficientCapacity(PourFailure):
    container_id: int
    attempted_volume: int
    available_capacity: int

    @property
    def message(self) -> str:
        return (
            f"Container {self.container_id} has room for {self.available_capacity} "
            f"but {self.attempted_volume} would be poured"
        )


PourResult = Union[
    PourSuccess,
    SameContainer,
    InvalidContainer,
    EmptySource,
    ContainerFull,
    ColorMismatch,
    InsufficientCapacity,
]
