import pytest

from tosaplan.ir import TensorType, Value, parse_module
from tosaplan.liveness import LivenessAnalysis
from tosaplan.memory_planner import MemoryPlanner, estimate_tensor_size
from tosaplan.tensor_graph import build_tensor_graph

MIXED = """
func.func @main(%arg0: tensor<64x64xf32>) -> tensor<64x64xf32> {
  %0 = tosa.abs %arg0 : (tensor<64x64xf32>) -> tensor<64x64xf32>
  %1 = tosa.abs %0 : (tensor<64x64xf32>) -> tensor<2xf32>
  %2 = tosa.negate %1 : (tensor<2xf32>) -> tensor<2xf32>
  %3 = tosa.add %1, %2 : (tensor<2xf32>, tensor<2xf32>) -> tensor<2xf32>
  %4 = tosa.add %0, %3 : (tensor<64x64xf32>, tensor<2xf32>) -> tensor<64x64xf32>
  return %4 : tensor<64x64xf32>
}
"""


def _chain(length, ty="tensor<4xf32>"):
    lines = [f"func.func @main(%arg0: {ty}) -> {ty} {{"]
    prev = "%arg0"
    for i in range(length):
        lines.append(f"  %{i} = tosa.abs {prev} : ({ty}) -> {ty}")
        prev = f"%{i}"
    lines.append(f"  return {prev} : {ty}")
    lines.append("}")
    return "\n".join(lines) + "\n"


def _planner(text):
    graph = build_tensor_graph(parse_module(text))
    planner = MemoryPlanner(graph, LivenessAnalysis(graph))
    planner.compute_tensor_sizes()
    return planner


def _size(type_text):
    return estimate_tensor_size(Value("%x", TensorType.parse(type_text)))


def _assert_no_overlap(planner):
    for index, pool in enumerate(planner.memory_pools):
        spans = sorted(
            (a.offset, a.offset + a.size)
            for a in planner.allocations
            if a.allocated_pool_index == index and not a.is_io
        )
        for (_, end), (start, _) in zip(spans, spans[1:]):
            assert end <= start
        for _, end in spans:
            assert end <= pool.size


@pytest.mark.parametrize(
    "bigger, smaller, factor",
    [
        ("tensor<2x3xf64>", "tensor<2x3xf32>", 2),
        ("tensor<2x3xf32>", "tensor<2x3xf16>", 2),
        ("tensor<?x4xf32>", "tensor<1x4xf32>", 1),
        ("tensor<3xi1>", "tensor<3xi8>", 1),
        ("tensor<3xindex>", "tensor<3xi32>", 1),
        ("tensor<3xi32>", "tensor<3xi8>", 4),
        ("tensor<5xbf16>", "tensor<5xf32>", 1),
    ],
)
def test_estimate_size_relations(bigger, smaller, factor):
    assert _size(bigger) == factor * _size(smaller)


def test_estimate_size_pinned_and_scalar():
    assert _size("tensor<2x3xf32>") == 24
    assert _size("f32") == 0


def test_compute_tensor_sizes():
    planner = _planner(_chain(3))
    assert len(planner.allocations) == 3
    assert planner.total_memory == sum(a.size for a in planner.allocations)
    outputs = [a for a in planner.allocations if a.is_model_output]
    assert [str(a.value) for a in outputs] == ["%2"]
    assert not any(a.is_model_input for a in planner.allocations)


def test_build_allocation_plan():
    planner = _planner(_chain(4))
    planner.build_allocation_plan()
    first = planner.memory_pools[0]
    assert first.name == "pool_0"
    assert first.size == 1024 * 1024
    for alloc in planner.allocations:
        if alloc.is_io:
            assert (alloc.allocated_pool_index, alloc.offset) == (0, 0)
        else:
            assert 0 <= alloc.allocated_pool_index < len(planner.memory_pools)
            assert alloc.offset >= 0
    _assert_no_overlap(planner)
    steps = len(planner.liveness.topo_sorted_nodes)
    assert len(planner.memory_usage_timeline) == steps + 1
    assert planner.peak_memory == max(planner.memory_usage_timeline)
    assert planner.peak_memory <= planner.total_memory


def test_timeline_end_holds_outputs_only():
    planner = _planner(_chain(3))
    planner.build_allocation_plan()
    output_sizes = sum(a.size for a in planner.allocations if a.is_model_output)
    assert planner.memory_usage_timeline[-1] == output_sizes


def test_optimize_heavy_tensors_get_dedicated_pools():
    planner = _planner(_chain(3))
    planner.optimize()
    for alloc in planner.allocations:
        if alloc.is_io:
            continue
        pool = planner.memory_pools[alloc.allocated_pool_index]
        assert alloc.offset == 0
        assert pool.size == alloc.size + 1024
        assert pool.free_intervals == []


def test_optimize_mixed_heavy_and_light():
    planner = _planner(MIXED)
    planner.optimize()
    light = [a for a in planner.allocations if not a.is_io and a.size < 100]
    heavy = [a for a in planner.allocations if not a.is_io and a.size >= 100]
    assert len(light) == 3
    assert len({a.allocated_pool_index for a in light}) == 1
    light_pool = planner.memory_pools[light[0].allocated_pool_index]
    assert light_pool.size == planner.total_memory // 2
    assert all(
        planner.memory_pools[a.allocated_pool_index].free_intervals == []
        for a in heavy
    )
    _assert_no_overlap(planner)


def test_optimize_expands_light_pool():
    planner = _planner(_chain(12))
    planner.optimize()
    light = [a for a in planner.allocations if not a.is_io]
    assert light
    pools = {a.allocated_pool_index for a in light}
    assert len(pools) == 1
    pool = planner.memory_pools[pools.pop()]
    assert pool.size > planner.total_memory // 2
    _assert_no_overlap(planner)


def test_optimize_compacts_free_intervals():
    planner = _planner(_chain(12))
    planner.optimize()
    for pool in planner.memory_pools:
        starts = [s for s, _ in pool.free_intervals]
        assert starts == sorted(starts)
        for (_, end), (start, _) in zip(pool.free_intervals, pool.free_intervals[1:]):
            assert end != start
    assert planner.peak_memory == max(planner.memory_usage_timeline)


def test_node_index():
    planner = _planner(_chain(3))
    nodes = planner.liveness.topo_sorted_nodes
    assert planner.node_index(None) == len(nodes)
    assert [planner.node_index(n) for n in nodes] == list(range(len(nodes)))