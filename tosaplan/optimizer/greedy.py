"""First-fit placement of tensors in definition order."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from .base import MemoryOptimizer, create_input_output_pool
from .lifetime import TensorLifetimeInfo
from .plan import MemoryAllocationPlan

MAIN_POOL_SIZE = 1024 * 1024
MIN_EXPANSION = 1024 * 1024


@dataclass(eq=False)
class _Region:
    offset: int
    size: int


def _merge(regions: list[_Region]) -> list[_Region]:
    merged: list[_Region] = []
    for region in sorted(regions, key=lambda r: r.offset):
        if merged and merged[-1].offset + merged[-1].size == region.offset:
            merged[-1].size += region.size
        else:
            merged.append(_Region(region.offset, region.size))
    return merged


class GreedyFirstFit(MemoryOptimizer):
    name = "GreedyFirstFit"
    description = (
        "A simple greedy algorithm that allocates tensors using a first-fit "
        "strategy based on their definition order."
    )

    def optimize(
        self, tensors: Sequence[TensorLifetimeInfo]
    ) -> MemoryAllocationPlan:
        plan = MemoryAllocationPlan()
        with self._timed():
            io_pool = create_input_output_pool(plan, tensors)
            main_pool = plan.add_memory_pool("main_pool", MAIN_POOL_SIZE)

            free: list[_Region] = [_Region(0, MAIN_POOL_SIZE)]
            live: list[tuple[TensorLifetimeInfo, int]] = []

            for tensor in sorted(tensors, key=lambda t: t.def_point):
                if tensor.is_io:
                    plan.allocate_tensor(tensor, io_pool, 0)
                    continue

                still_live = []
                for other, offset in live:
                    if other.last_use_point < tensor.def_point:
                        free.append(_Region(offset, other.size))
                    else:
                        still_live.append((other, offset))
                live = still_live
                free = _merge(free)

                slot = next((r for r in free if r.size >= tensor.size), None)
                if slot is not None:
                    offset = slot.offset
                    slot.offset += tensor.size
                    slot.size -= tensor.size
                    if slot.size == 0:
                        free.remove(slot)
                else:
                    pool_size = plan.pools[main_pool].size
                    new_size = pool_size + max(tensor.size, MIN_EXPANSION)
                    plan.resize_pool(main_pool, new_size)
                    offset = pool_size
                    end = pool_size + tensor.size
                    if end < new_size:
                        free.append(_Region(end, new_size - end))

                plan.allocate_tensor(tensor, main_pool, offset)
                live.append((tensor, offset))

            self._record_metrics(tensors, plan)
        return plan