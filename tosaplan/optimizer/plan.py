"""The pools and per-tensor placements an optimizer produces."""

from __future__ import annotations

from dataclasses import dataclass, field

from .lifetime import TensorLifetimeInfo


@dataclass
class MemoryPool:
    name: str
    size: int


@dataclass
class TensorAllocation:
    tensor: TensorLifetimeInfo
    pool_index: int
    offset: int


@dataclass
class MemoryAllocationPlan:
    """Memory pools plus the pool and offset assigned to each tensor."""

    pools: list[MemoryPool] = field(default_factory=list)
    allocations: list[TensorAllocation] = field(default_factory=list)
    _by_id: dict[str, int] = field(default_factory=dict, repr=False)

    def add_memory_pool(self, name: str, size: int) -> int:
        """Append a pool and return its index."""
        self.pools.append(MemoryPool(name, size))
        return len(self.pools) - 1

    def resize_pool(self, pool_index: int, new_size: int) -> None:
        """Set a pool's size; indices out of range are ignored."""
        if 0 <= pool_index < len(self.pools):
            self.pools[pool_index].size = new_size

    def allocate_tensor(
        self, tensor: TensorLifetimeInfo, pool_index: int, offset: int
    ) -> None:
        self.allocations.append(TensorAllocation(tensor, pool_index, offset))
        self._by_id[tensor.id] = len(self.allocations) - 1

    def allocation_for(self, tensor_id: str) -> TensorAllocation | None:
        """The latest allocation of the tensor with this id, if any."""
        index = self._by_id.get(tensor_id)
        return None if index is None else self.allocations[index]

    def total_memory_usage(self) -> int:
        """Sum of all pool sizes."""
        return sum(pool.size for pool in self.pools)

    def clear(self) -> None:
        self.pools.clear()
        self.allocations.clear()
        self._by_id.clear()