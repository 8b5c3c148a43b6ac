"""Common ground of the memory optimizers: metrics and shared helpers."""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field

from .lifetime import TensorLifetimeInfo
from .plan import MemoryAllocationPlan

IO_POOL_MIN_SIZE = 1024 * 1024


@dataclass
class OptimizationMetrics:
    """Figures describing how good an allocation plan is."""

    total_tensor_memory: int = 0
    peak_memory_usage: int = 0
    total_pool_memory: int = 0
    temporal_efficiency: float = 0.0
    spatial_efficiency: float = 0.0
    optimization_time_ms: float = 0.0
    number_of_pools: int = 0
    largest_pool_size: int = 0
    fragmentation_ratio: float = 0.0
    memory_usage_timeline: list[int] = field(default_factory=list)
    custom_metrics: dict[str, float] = field(default_factory=dict)


def compute_memory_usage_timeline(
    tensors: Sequence[TensorLifetimeInfo], execution_steps: int
) -> list[int]:
    """Bytes live at each step from 0 to ``execution_steps`` inclusive."""
    timeline = [0] * (execution_steps + 1)
    for tensor in tensors:
        for step in range(max(tensor.def_point, 0), tensor.last_use_point + 1):
            timeline[step] += tensor.size
    return timeline


def max_execution_step(tensors: Sequence[TensorLifetimeInfo]) -> int:
    """The latest last-use point among the tensors, at least 0."""
    return max((t.last_use_point for t in tensors), default=0)


def create_input_output_pool(
    plan: MemoryAllocationPlan, tensors: Sequence[TensorLifetimeInfo]
) -> int:
    """Add a pool large enough for every model input and output."""
    size = sum(t.size for t in tensors if t.is_io)
    return plan.add_memory_pool("io_pool", max(size, IO_POOL_MIN_SIZE))


class MemoryOptimizer(ABC):
    """A strategy turning tensor lifetimes into an allocation plan."""

    name: str = ""
    description: str = ""

    def __init__(self) -> None:
        self.metrics = OptimizationMetrics()

    @abstractmethod
    def optimize(
        self, tensors: Sequence[TensorLifetimeInfo]
    ) -> MemoryAllocationPlan:
        """Produce a plan and refresh :attr:`metrics`."""

    @contextmanager
    def _timed(self) -> Iterator[None]:
        self.metrics = OptimizationMetrics()
        start = time.perf_counter()
        try:
            yield
        finally:
            self.metrics.optimization_time_ms = (time.perf_counter() - start) * 1000.0

    def _record_metrics(
        self, tensors: Sequence[TensorLifetimeInfo], plan: MemoryAllocationPlan
    ) -> None:
        m = self.metrics
        m.memory_usage_timeline = compute_memory_usage_timeline(
            tensors, max_execution_step(tensors)
        )
        m.peak_memory_usage = max(m.memory_usage_timeline, default=0)
        m.total_tensor_memory = sum(t.size for t in tensors)
        m.number_of_pools = len(plan.pools)
        m.total_pool_memory = plan.total_memory_usage()
        m.largest_pool_size = max((p.size for p in plan.pools), default=0)
        if m.peak_memory_usage > 0:
            m.temporal_efficiency = m.total_tensor_memory / m.peak_memory_usage * 100.0
        if m.total_pool_memory > 0:
            m.spatial_efficiency = m.total_tensor_memory / m.total_pool_memory * 100.0
            m.fragmentation_ratio = (
                (m.total_pool_memory - m.total_tensor_memory)
                / m.total_pool_memory
                * 100.0
            )