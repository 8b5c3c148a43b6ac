import itertools

from tosaplan.optimizer.greedy import GreedyFirstFit
from tosaplan.optimizer.lifetime import TensorLifetimeInfo

MB = 1024 * 1024


def _t(name, first, last, size, **flags):
    return TensorLifetimeInfo(name, None, size, first, last, **flags)


def test_name_and_description():
    opt = GreedyFirstFit()
    assert opt.name == "GreedyFirstFit"
    assert "first-fit" in opt.description


def test_pools_are_io_then_main():
    plan = GreedyFirstFit().optimize([_t("a", 0, 1, 64)])
    assert [p.name for p in plan.pools] == ["io_pool", "main_pool"]
    assert plan.pools[1].size == MB


def test_io_tensors_go_to_io_pool_at_zero():
    tensors = [
        _t("in", 0, 1, 128, is_model_input=True),
        _t("out", 1, 2, 128, is_model_output=True),
    ]
    plan = GreedyFirstFit().optimize(tensors)
    for name in ("in", "out"):
        alloc = plan.allocation_for(name)
        assert alloc.pool_index == 0
        assert alloc.offset == 0


def test_every_tensor_is_allocated():
    tensors = [_t(f"t{i}", i, i + 2, 100 * (i + 1)) for i in range(6)]
    plan = GreedyFirstFit().optimize(tensors)
    assert len(plan.allocations) == len(tensors)
    assert all(plan.allocation_for(t.id) is not None for t in tensors)


def test_dead_tensor_memory_is_reused():
    a = _t("a", 0, 1, 100)
    b = _t("b", 2, 3, 100)
    plan = GreedyFirstFit().optimize([a, b])
    assert plan.allocation_for("b").offset == plan.allocation_for("a").offset


def test_live_tensors_never_share_memory():
    tensors = [
        _t("a", 0, 4, 300),
        _t("b", 1, 2, 200),
        _t("c", 2, 5, 150),
        _t("d", 3, 3, 500),
        _t("e", 4, 6, 50),
        _t("f", 6, 7, 400),
    ]
    plan = GreedyFirstFit().optimize(tensors)
    for x, y in itertools.combinations(tensors, 2):
        ax, ay = plan.allocation_for(x.id), plan.allocation_for(y.id)
        if ax.pool_index != ay.pool_index or not x.overlaps(y):
            continue
        assert ax.offset + x.size <= ay.offset or ay.offset + y.size <= ax.offset


def test_large_tensor_expands_main_pool():
    size = 2 * MB
    plan = GreedyFirstFit().optimize([_t("big", 0, 1, size)])
    alloc = plan.allocation_for("big")
    assert alloc.pool_index == 1
    assert alloc.offset == MB
    assert plan.pools[1].size == MB + size


def test_metrics_follow_plan():
    tensors = [_t("a", 0, 2, 100), _t("b", 1, 3, 50), _t("c", 3, 4, 25)]
    opt = GreedyFirstFit()
    plan = opt.optimize(tensors)
    m = opt.metrics
    assert m.total_tensor_memory == sum(t.size for t in tensors)
    assert len(m.memory_usage_timeline) == max(t.last_use_point for t in tensors) + 1
    assert m.peak_memory_usage == max(m.memory_usage_timeline)
    assert m.number_of_pools == len(plan.pools)
    assert m.total_pool_memory == plan.total_memory_usage()
    assert m.optimization_time_ms >= 0.0


def test_allocations_stay_inside_pool():
    tensors = [_t(f"t{i}", i % 3, i % 3 + 1, 200 * 1024) for i in range(12)]
    plan = GreedyFirstFit().optimize(tensors)
    for tensor in tensors:
        alloc = plan.allocation_for(tensor.id)
        assert alloc.offset + tensor.size <= plan.pools[alloc.pool_index].size