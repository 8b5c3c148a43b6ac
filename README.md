# tosaplan

Analyse a TOSA tensor program written in MLIR's textual form. tosaplan
builds the program's dataflow graph, works out when each tensor is live,
and plans where each tensor sits in static memory pools.

It has no dependencies outside the Python standard library.

## Installing

    pip install .

## Running

    tosaplan --input model.mlir

The command reads the module and prints it. It then writes three files:

- a Graphviz graph of the dataflow (`--liveness-visulize-dot`, default
  `tensorGrpah.dot`)
- a C header that declares the memory pools and defines one pointer macro
  per tensor (`--memory-plan`, default `memory_plan.h`)
- an HTML page that shows the layout of each pool and the memory use at
  each step (`--memory-vis`, default `memory_vis.html`)

The planner logs its progress to standard output. At the end the command
prints the liveness report and the memory statistics.

Each option also takes the single-dash spelling, for example
`-input model.mlir`. The command exits with status 1 if it cannot read or
parse the input file.

## Using the library

```python
from tosaplan.ir import parse_file
from tosaplan.tensor_graph import build_tensor_graph
from tosaplan.liveness import LivenessAnalysis
from tosaplan.memory_planner import MemoryPlanner
from tosaplan.memory_report import memory_statistics, write_allocation_code

module = parse_file("model.mlir")
graph = build_tensor_graph(module)          # only tosa.* operations become nodes
liveness = LivenessAnalysis(graph)          # raises ValueError on a cycle
print(liveness.report())

planner = MemoryPlanner(graph, liveness)
planner.compute_tensor_sizes()
planner.build_allocation_plan()             # first fit in definition order
planner.optimize()                          # heavy tensors get dedicated pools
print(memory_statistics(planner))
write_allocation_code(planner, "memory_plan.h")
```

The modules:

- `tosaplan.ir`: `parse_module` and `parse_file` read module text into
  `Module`, `Function`, `Operation`, `Value` and `TensorType` objects. They
  raise `ParseError` on text they cannot read.
- `tosaplan.tensor_node`, `tosaplan.tensor_graph`: `TensorNode`,
  `TensorGraph` (with `to_dot` and `export_dot`) and `build_tensor_graph`.
- `tosaplan.liveness`: `LivenessAnalysis` holds the topological execution
  order, the live-in and live-out sets of each node, and a `LiveRange` for
  each value.
- `tosaplan.memory_planner`: `MemoryPlanner`, `AllocationInfo`,
  `MemoryPool` and `estimate_tensor_size`.
- `tosaplan.memory_report`: `allocation_code` / `write_allocation_code`,
  `memory_statistics`, `memory_visualization_html` /
  `write_memory_visualization`, and `c_pointer_type`.
- `tosaplan.analyzer`: `TosaAnalyzer`, `parse_args` and `main`, which
  implement the command.

## Standalone allocators

The `tosaplan.optimizer` package works on plain lifetime records and
needs no parsed module:

```python
from tosaplan.optimizer.lifetime import TensorLifetimeInfo
from tosaplan.optimizer.greedy import GreedyFirstFit
from tosaplan.optimizer.heavy_light import HeavyLightDecomposition

tensors = [
    TensorLifetimeInfo("a", None, 4096, 0, 2),
    TensorLifetimeInfo("b", None, 4096, 1, 3),
    TensorLifetimeInfo("c", None, 4096, 3, 4),
]
for optimizer in (GreedyFirstFit(), HeavyLightDecomposition()):
    plan = optimizer.optimize(tensors)
    print(optimizer.name, plan.allocation_for("c"), optimizer.metrics.peak_memory_usage)
```

Each optimizer returns a `MemoryAllocationPlan`, made of pools and one
`TensorAllocation` per tensor. It also keeps an `OptimizationMetrics`
record of its latest run in `metrics`. The record holds the peak usage,
the pool totals, efficiency and fragmentation percentages, a per-step
usage timeline and the run time.

## What it does not do

- The reader handles a subset of the textual form: modules, functions and
  single-line operations in generic or custom syntax. It rejects
  operations with regions and unranked types. It does not verify
  operations against any dialect.
- The generated header only declares pools and pointer macros. It
  contains no code that runs a model.
- The `tosa plan` command uses `MemoryPlanner` only. The allocators in
  `tosaplan.optimizer` are available through the library and are not
  wired into the command.