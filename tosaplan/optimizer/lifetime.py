"""Lifetime records of tensors handed to the memory optimizers."""

from __future__ import annotations

from dataclasses import dataclass, field

from ..ir import TensorType, Value


@dataclass(eq=False)
class TensorLifetimeInfo:
    """A tensor's size and the execution steps between which it is live."""

    id: str
    value: Value | None
    size: int
    def_point: int
    last_use_point: int
    is_model_input: bool = False
    is_model_output: bool = False
    type: TensorType | None = field(init=False, default=None)

    def __post_init__(self) -> None:
        self.type = self.value.type if self.value is not None else None

    @property
    def is_io(self) -> bool:
        return self.is_model_input or self.is_model_output

    def overlaps(self, other: TensorLifetimeInfo) -> bool:
        """True if the two lifetimes share at least one execution step."""
        return not (
            self.last_use_point < other.def_point
            or other.last_use_point < self.def_point
        )