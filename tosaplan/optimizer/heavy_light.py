"""Bin packing that gives large tensors their own pools and shares the rest."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from .base import MemoryOptimizer, create_input_output_pool
from .lifetime import TensorLifetimeInfo
from .plan import MemoryAllocationPlan

HEAVY_THRESHOLD = 0.1


@dataclass(frozen=True)
class _Region:
    offset: int
    size: int
    last_use_point: int

    @property
    def end(self) -> int:
        return self.offset + self.size


def _best_fit_gap(regions: Sequence[_Region], size: int) -> int | None:
    """Offset of the smallest gap between live regions that holds ``size``."""
    best_offset: int | None = None
    best_size: int | None = None
    cursor = 0
    for start, end in sorted((r.offset, r.end) for r in regions):
        if start > cursor:
            gap = start - cursor
            if gap >= size and (best_size is None or gap < best_size):
                best_offset, best_size = cursor, gap
        cursor = max(cursor, end)
    return best_offset


class HeavyLightDecomposition(MemoryOptimizer):
    name = "HeavyLightDecomposition"
    description = (
        "A bin-packing algorithm that separates tensors into 'heavy' and 'light' "
        "categories, optimizing them separately for improved memory utilization."
    )

    def optimize(
        self, tensors: Sequence[TensorLifetimeInfo]
    ) -> MemoryAllocationPlan:
        plan = MemoryAllocationPlan()
        with self._timed():
            io_pool = create_input_output_pool(plan, tensors)
            total_memory = sum(t.size for t in tensors)
            size_threshold = int(total_memory * HEAVY_THRESHOLD)

            heavy: list[TensorLifetimeInfo] = []
            light: list[TensorLifetimeInfo] = []
            for tensor in tensors:
                if tensor.is_io:
                    plan.allocate_tensor(tensor, io_pool, 0)
                elif tensor.size >= size_threshold:
                    heavy.append(tensor)
                else:
                    light.append(tensor)

            heavy.sort(key=lambda t: t.size, reverse=True)
            light.sort(key=lambda t: t.def_point)

            for tensor in heavy:
                pool_index = plan.add_memory_pool(
                    f"heavy_pool_{tensor.id}", tensor.size
                )
                plan.allocate_tensor(tensor, pool_index, 0)

            light_pool_size = total_memory // 2
            light_pool = plan.add_memory_pool("light_pool", light_pool_size)
            regions: list[_Region] = []
            next_free = 0

            for tensor in light:
                regions = [r for r in regions if r.last_use_point >= tensor.def_point]
                offset = _best_fit_gap(regions, tensor.size)
                if offset is None:
                    if next_free + tensor.size > light_pool_size:
                        light_pool_size *= 2
                        plan.resize_pool(light_pool, light_pool_size)
                    offset = next_free
                    next_free += tensor.size
                plan.allocate_tensor(tensor, light_pool, offset)
                regions.append(_Region(offset, tensor.size, tensor.last_use_point))

            self._record_metrics(tensors, plan)
            heavy_memory = sum(t.size for t in heavy)
            self.metrics.custom_metrics["heavy_tensors_count"] = float(len(heavy))
            self.metrics.custom_metrics["light_tensors_count"] = float(len(light))
            self.metrics.custom_metrics["heavy_memory_percentage"] = (
                heavy_memory / total_memory * 100.0 if total_memory > 0 else 0.0
            )
        return plan