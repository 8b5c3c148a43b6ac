"""Static memory planning for the tensors of an analysed graph."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field

from .ir import Value
from .liveness import LivenessAnalysis
from .tensor_graph import TensorGraph
from .tensor_node import TensorNode

logger = logging.getLogger(__name__)

HEAVY_THRESHOLD = 0.1
INITIAL_POOL_SIZE = 1024 * 1024
HEAVY_POOL_PADDING = 1024
MIN_EXPANSION = 64 * 1024


def estimate_tensor_size(value: Value) -> int:
    """Bytes needed for a shaped value; 0 for scalars."""
    ty = value.type
    if not ty.is_shaped:
        return 0
    elements = math.prod(d if d >= 0 else 1 for d in ty.shape)
    if ty.is_int_or_index:
        width = ty.integer_width()
        if width is None:
            width = 32
        element_size = (width + 7) // 8
    elif ty.element_type == "f16":
        element_size = 2
    elif ty.element_type == "f64":
        element_size = 8
    else:
        element_size = 4
    return elements * element_size


@dataclass(eq=False)
class AllocationInfo:
    """Where one tensor lives and for how long."""

    value: Value
    def_node: TensorNode | None
    last_use_node: TensorNode | None
    size: int
    allocated_pool_index: int = -1
    offset: int = -1
    is_model_input: bool = False
    is_model_output: bool = False

    @property
    def is_io(self) -> bool:
        return self.is_model_input or self.is_model_output


@dataclass
class MemoryPool:
    """A named block of memory with its free (start, end) intervals."""

    name: str
    size: int
    free_intervals: list[tuple[int, int]] = field(default_factory=list)

    @property
    def free_space(self) -> int:
        return sum(end - start for start, end in self.free_intervals)

    @property
    def used_space(self) -> int:
        return self.size - self.free_space

    def first_fit(self, size: int) -> int | None:
        """Index of the first free interval that holds ``size`` bytes."""
        return next(
            (i for i, (s, e) in enumerate(self.free_intervals) if e - s >= size),
            None,
        )

    def take(self, interval_index: int, size: int) -> int:
        """Carve ``size`` bytes from the front of an interval; return the offset."""
        start, end = self.free_intervals.pop(interval_index)
        if start + size < end:
            self.free_intervals.append((start + size, end))
            self.free_intervals.sort(key=lambda iv: iv[0])
        return start

    def compact(self) -> None:
        """Sort free intervals and merge those that touch."""
        merged: list[tuple[int, int]] = []
        for start, end in sorted(self.free_intervals, key=lambda iv: iv[0]):
            if merged and merged[-1][1] == start:
                merged[-1] = (merged[-1][0], end)
            else:
                merged.append((start, end))
        self.free_intervals = merged


def _percent(part: float, whole: float) -> float:
    return part / whole * 100.0 if whole else float("nan")


class MemoryPlanner:
    """Assigns every tensor of the graph a pool and an offset."""

    def __init__(self, graph: TensorGraph, liveness: LivenessAnalysis) -> None:
        self.graph = graph
        self.liveness = liveness
        self.allocations: list[AllocationInfo] = []
        self.memory_pools: list[MemoryPool] = []
        self.total_memory = 0
        self.peak_memory = 0
        self.memory_usage_timeline: list[int] = []

    @property
    def total_pool_size(self) -> int:
        return sum(pool.size for pool in self.memory_pools)

    def node_index(self, node: TensorNode | None) -> int:
        """Execution index of a node; None maps past the end, unknown to -1."""
        return self.liveness.index_of(node)

    def compute_tensor_sizes(self) -> None:
        """Collect an allocation record for every shaped value."""
        self.allocations = []
        self.total_memory = 0
        for value, rng in self.liveness.live_ranges.items():
            if not value.type.is_shaped:
                continue
            alloc = AllocationInfo(
                value=value,
                def_node=rng.def_node,
                last_use_node=rng.last_use_node,
                size=estimate_tensor_size(value),
                is_model_input=rng.def_node is None,
                is_model_output=not rng.use_nodes,
            )
            self.allocations.append(alloc)
            self.total_memory += alloc.size
        logger.info("Found %d tensors requiring allocation", len(self.allocations))
        logger.info("Total memory for all tensors: %s KB", self.total_memory / 1024.0)

    def _create_pool(self, size: int) -> int:
        self.memory_pools.append(
            MemoryPool(f"pool_{len(self.memory_pools)}", size, [(0, size)])
        )
        return len(self.memory_pools) - 1

    def _find_pool(self, size: int) -> int | None:
        return next(
            (i for i, pool in enumerate(self.memory_pools)
             if pool.first_fit(size) is not None),
            None,
        )

    def _insert_into_pool(self, pool_index: int, alloc: AllocationInfo) -> None:
        pool = self.memory_pools[pool_index]
        slot = pool.first_fit(alloc.size)
        if slot is None:
            raise ValueError(
                f"no free interval of {alloc.size} bytes in {pool.name}"
            )
        alloc.allocated_pool_index = pool_index
        alloc.offset = pool.take(slot, alloc.size)

    def _position(self, node: TensorNode | None, default: int) -> int:
        if node is None:
            return default
        index = self.liveness.index_of(node)
        return default if index < 0 else index

    def _build_memory_usage_timeline(self) -> None:
        steps = len(self.liveness.topo_sorted_nodes)
        timeline = [0] * (steps + 1)
        for alloc in self.allocations:
            first = self._position(alloc.def_node, 0)
            last = self._position(alloc.last_use_node, steps)
            for i in range(first, last + 1):
                timeline[i] += alloc.size
        self.memory_usage_timeline = timeline
        self.peak_memory = max(timeline)

    def build_allocation_plan(self) -> None:
        """First-fit placement of tensors in definition order."""
        self.allocations.sort(
            key=lambda a: (0, 0) if a.is_model_input else (1, self.node_index(a.def_node))
        )
        self.memory_pools = []
        self._create_pool(INITIAL_POOL_SIZE)
        for alloc in self.allocations:
            if alloc.is_io:
                alloc.allocated_pool_index = 0
                alloc.offset = 0
                continue
            pool_index = self._find_pool(alloc.size)
            if pool_index is None:
                pool_index = self._create_pool(max(alloc.size, INITIAL_POOL_SIZE))
            self._insert_into_pool(pool_index, alloc)
        self._build_memory_usage_timeline()
        logger.info("Memory allocation plan complete.")
        logger.info("Total memory: %s KB", self.total_memory / 1024.0)
        logger.info("Peak memory: %s KB", self.peak_memory / 1024.0)
        logger.info(
            "Memory efficiency: %s%%", _percent(self.total_memory, self.peak_memory)
        )

    def _conflicts(self, alloc: AllocationInfo, pool_index: int) -> bool:
        first = self.node_index(alloc.def_node)
        last = self.node_index(alloc.last_use_node)
        for other in self.allocations:
            if other is alloc or other.allocated_pool_index != pool_index:
                continue
            other_first = self.node_index(other.def_node)
            other_last = self.node_index(other.last_use_node)
            if not (last < other_first or other_last < first):
                return True
        return False

    def _place_in_shared_pools(self, alloc: AllocationInfo) -> bool:
        for pool_index in range(1, len(self.memory_pools)):
            pool = self.memory_pools[pool_index]
            if not pool.free_intervals:
                continue
            slot = pool.first_fit(alloc.size)
            if slot is None or self._conflicts(alloc, pool_index):
                continue
            alloc.allocated_pool_index = pool_index
            alloc.offset = pool.take(slot, alloc.size)
            return True
        return False

    def _place_in_light_pool(self, alloc: AllocationInfo, pool_index: int) -> None:
        pool = self.memory_pools[pool_index]
        alloc.allocated_pool_index = pool_index
        slot = pool.first_fit(alloc.size)
        if slot is not None:
            alloc.offset = pool.take(slot, alloc.size)
            return
        expansion = max(alloc.size * 2, MIN_EXPANSION)
        old_size = pool.size
        pool.size += expansion
        alloc.offset = old_size
        if old_size + alloc.size < pool.size:
            pool.free_intervals.append((old_size + alloc.size, pool.size))
        logger.info(
            "Expanded light tensor pool by %s KB to fit tensor of size %s KB",
            expansion / 1024.0,
            alloc.size / 1024.0,
        )

    def optimize(self) -> None:
        """Re-plan with heavy tensors in dedicated pools and light ones shared."""
        self.memory_pools = []
        self._create_pool(INITIAL_POOL_SIZE)
        size_threshold = int(self.total_memory * HEAVY_THRESHOLD)

        heavy: list[AllocationInfo] = []
        light: list[AllocationInfo] = []
        for alloc in self.allocations:
            if alloc.is_io:
                alloc.allocated_pool_index = 0
                alloc.offset = 0
                continue
            alloc.allocated_pool_index = -1
            alloc.offset = -1
            (heavy if alloc.size >= size_threshold else light).append(alloc)
        logger.info(
            "Classification: %d heavy tensors, %d light tensors", len(heavy), len(light)
        )

        heavy.sort(key=lambda a: a.size, reverse=True)
        light.sort(
            key=lambda a: (a.def_node is not None, self.node_index(a.def_node))
        )

        for alloc in heavy:
            pool_index = self._create_pool(alloc.size + HEAVY_POOL_PADDING)
            alloc.allocated_pool_index = pool_index
            alloc.offset = 0
            self.memory_pools[pool_index].free_intervals.clear()
            logger.info(
                "Allocated heavy tensor (%s KB) to dedicated pool %d",
                alloc.size / 1024.0,
                pool_index,
            )

        light_pool = self._create_pool(self.total_memory // 2)
        for alloc in light:
            if not self._place_in_shared_pools(alloc):
                self._place_in_light_pool(alloc, light_pool)

        for pool in self.memory_pools:
            pool.compact()
        self._build_memory_usage_timeline()

        logger.info("Memory optimization complete.")
        logger.info("Total memory: %s KB", self.total_memory / 1024.0)
        logger.info("Peak memory usage: %s KB", self.peak_memory / 1024.0)
        logger.info("Total pool size: %s KB", self.total_pool_size / 1024.0)
        logger.info(
            "Temporal efficiency: %s%%", _percent(self.total_memory, self.peak_memory)
        )
        logger.info(
            "Spatial efficiency: %s%%",
            _percent(self.total_memory, self.total_pool_size),
        )