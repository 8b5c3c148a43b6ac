"""Text, header and HTML renderings of a memory plan."""

from __future__ import annotations

import html
import logging
import math
from pathlib import Path

from .ir import TensorType
from .memory_planner import AllocationInfo, MemoryPlanner

logger = logging.getLogger(__name__)

CHART_WIDTH = 50
POOL_WIDTH = 800
POOL_HEIGHT = 100
TOP_TENSORS = 10

_C_TYPES = {
    "f32": "float*",
    "f64": "double*",
    "i8": "int8_t*",
    "i16": "int16_t*",
    "i32": "int32_t*",
    "i64": "int64_t*",
}

_COLORS = {
    "f32": "#AEC",
    "i8": "#ECA",
    "i16": "#CDE",
    "i32": "#EAC",
}
_DEFAULT_COLOR = "#ACE"

_STYLE = """\
  <style>
    body { font-family: Arial, sans-serif; margin: 20px; }
    .tensor { position: absolute; border: 1px solid #000; background: #ACE; }
    .tensor-label { font-size: 10px; overflow: hidden; }
    .pool { position: relative; border: 1px solid #444; margin-bottom: 10px; }
    .pool-label { font-weight: bold; margin-bottom: 5px; }
    .timeline { margin-top: 30px; }
    .timeline-bar { height: 20px; background: #ACE; margin-bottom: 2px; }
  </style>"""


def _kb(size: float) -> str:
    return f"{size / 1024.0:g}"


def _percent(part: float, whole: float) -> str:
    if whole:
        value = part / whole * 100.0
    else:
        value = math.nan if part == 0 else math.inf
    return f"{value:g}"


def _node_name(alloc: AllocationInfo) -> str:
    return alloc.def_node.id if alloc.def_node is not None else "MODEL_INPUT"


def _timeline_labels(planner: MemoryPlanner) -> list[str]:
    order = planner.liveness.topo_sorted_nodes
    return [
        order[i].id if i < len(order) else "END"
        for i in range(len(planner.memory_usage_timeline))
    ]


def c_pointer_type(tensor_type: TensorType | None) -> str:
    """The C pointer type used to address a tensor of this type."""
    if tensor_type is None or not tensor_type.is_shaped:
        return "void*"
    return _C_TYPES.get(tensor_type.element_type, "void*")


def _tensor_macro_name(alloc: AllocationInfo, index: int) -> str:
    if alloc.def_node is not None:
        name = f"tensor_{alloc.def_node.id}"
    else:
        name = f"input_tensor_{index}"
    return name.replace(".", "_").replace("-", "_")


def allocation_code(planner: MemoryPlanner) -> str:
    """A C header declaring the pools and a macro per tensor."""
    pools = planner.memory_pools
    lines = [
        "// Memory allocation plan generated by TosaAnalyzer",
        "",
        "// Memory pool declarations",
    ]
    lines += [f"uint8_t {pool.name}[{pool.size}];" for pool in pools]
    lines += ["", "// Tensor allocation macros"]
    for index, alloc in enumerate(planner.allocations):
        if 0 <= alloc.allocated_pool_index < len(pools):
            target = pools[alloc.allocated_pool_index].name
            if alloc.offset > 0:
                target += f" + {alloc.offset}"
        else:
            target = "NULL /* Error: No memory pool assigned */"
        pointer = c_pointer_type(alloc.value.type)
        lines.append(
            f"#define {_tensor_macro_name(alloc, index)} (({pointer})({target}))"
        )
    lines += ["", "// End of memory allocation plan"]
    return "\n".join(lines) + "\n"


def write_allocation_code(planner: MemoryPlanner, path: str | Path) -> None:
    """Write :func:`allocation_code` to ``path``."""
    Path(path).write_text(allocation_code(planner), encoding="utf-8")
    logger.info("Generated memory allocation code to %s", path)


def memory_statistics(planner: MemoryPlanner) -> str:
    """A plain-text summary of pools, largest tensors and the usage timeline."""
    out = [
        "",
        "===== Memory Usage Statistics =====",
        f"Total number of tensors: {len(planner.allocations)}",
        f"Total memory for all tensors: {_kb(planner.total_memory)} KB",
        f"Peak memory usage: {_kb(planner.peak_memory)} KB",
        "Memory efficiency: "
        f"{_percent(planner.total_memory, planner.peak_memory)}%",
        "",
        "Memory Pools:",
    ]
    for i, pool in enumerate(planner.memory_pools):
        used = pool.used_space
        out.append(
            f"  Pool {i} ({pool.name}): {_kb(pool.size)} KB total, "
            f"{_kb(used)} KB used ({_percent(used, pool.size)}%)"
        )

    out += ["", "Largest Tensors:"]
    largest = sorted(planner.allocations, key=lambda a: a.size, reverse=True)
    for rank, alloc in enumerate(largest[:TOP_TENSORS], 1):
        line = f"  {rank}. {_node_name(alloc)}: {_kb(alloc.size)} KB"
        if alloc.value.type.is_shaped:
            dims = ", ".join(str(d) for d in alloc.value.type.shape)
            line += f" (shape: [{dims}])"
        out.append(line)

    out += ["", "Memory Usage Timeline:"]
    timeline = planner.memory_usage_timeline
    scale = max(timeline, default=0) or 1
    for i, (label, usage) in enumerate(zip(_timeline_labels(planner), timeline)):
        bar = "=" * (usage * CHART_WIDTH // scale)
        out.append(f"  {i}: {label} - {_kb(usage)} KB [{bar:<{CHART_WIDTH}}]")
    return "\n".join(out) + "\n"


def _tensor_color(alloc: AllocationInfo) -> str:
    ty = alloc.value.type
    if not ty.is_shaped:
        return _DEFAULT_COLOR
    return _COLORS.get(ty.element_type, _DEFAULT_COLOR)


def memory_visualization_html(planner: MemoryPlanner) -> str:
    """An HTML page drawing every pool's tensors and the usage timeline."""
    out = [
        "<!DOCTYPE html>",
        "<html>",
        "<head>",
        "  <title>Memory Usage Visualization</title>",
        _STYLE,
        "</head>",
        "<body>",
        "  <h1>Memory Usage Visualization</h1>",
        "  <h2>Statistics</h2>",
        f"  <p>Total Tensors: {len(planner.allocations)}</p>",
        f"  <p>Total Memory: {_kb(planner.total_memory)} KB</p>",
        f"  <p>Peak Memory: {_kb(planner.peak_memory)} KB</p>",
        "  <p>Memory Efficiency: "
        f"{_percent(planner.total_memory, planner.peak_memory)}%</p>",
        "",
        "  <h2>Memory Pools</h2>",
    ]
    for i, pool in enumerate(planner.memory_pools):
        out.append(
            f"  <div class='pool-label'>Pool {i} ({pool.name}): "
            f"{_kb(pool.size)} KB</div>"
        )
        out.append(
            f"  <div class='pool' style='width: {POOL_WIDTH}px; "
            f"height: {POOL_HEIGHT}px;'>"
        )
        for alloc in planner.allocations:
            if alloc.allocated_pool_index != i:
                continue
            x_ratio = alloc.offset / pool.size if pool.size else 0.0
            width_ratio = alloc.size / pool.size if pool.size else 0.0
            x = int(x_ratio * POOL_WIDTH)
            width = max(1, int(width_ratio * POOL_WIDTH))
            out.append(
                f"    <div class='tensor' style='left: {x}px; top: 10px; "
                f"width: {width}px; height: {POOL_HEIGHT - 20}px; "
                f"background: {_tensor_color(alloc)};'>"
            )
            out.append(
                f"      <div class='tensor-label'>{html.escape(_node_name(alloc))}"
                f"<br>{_kb(alloc.size)} KB</div>"
            )
            out.append("    </div>")
        out.append("  </div>")
        out.append("")

    out += ["  <h2>Memory Usage Timeline</h2>", "  <div class='timeline'>"]
    timeline = planner.memory_usage_timeline
    scale = max(timeline, default=0) or 1
    for label, usage in zip(_timeline_labels(planner), timeline):
        width = usage * POOL_WIDTH // scale
        out += [
            "    <div style='display: flex; align-items: center; "
            "margin-bottom: 5px;'>",
            "      <div style='width: 150px; overflow: hidden; "
            f"text-overflow: ellipsis;'>{html.escape(label)}</div>",
            f"      <div class='timeline-bar' style='width: {width}px;'></div>",
            f"      <div style='margin-left: 10px;'>{_kb(usage)} KB</div>",
            "    </div>",
        ]
    out += ["  </div>", "</body>", "</html>"]
    return "\n".join(out) + "\n"


def write_memory_visualization(planner: MemoryPlanner, path: str | Path) -> None:
    """Write :func:`memory_visualization_html` to ``path``."""
    Path(path).write_text(memory_visualization_html(planner), encoding="utf-8")
    logger.info("Generated memory usage visualization to %s", path)