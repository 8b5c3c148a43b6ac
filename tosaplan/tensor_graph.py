"""The data-flow graph of tosa operations."""

from __future__ import annotations

from pathlib import Path

from .ir import Module, Value
from .tensor_node import TensorNode


class TensorGraph:
    """Nodes plus maps from values to their defining and using nodes."""

    def __init__(self) -> None:
        self.nodes: list[TensorNode] = []
        self.defining_nodes: dict[Value, TensorNode] = {}
        self.user_nodes: dict[Value, list[TensorNode]] = {}

    def add_node(self, node: TensorNode) -> None:
        self.nodes.append(node)
        for result in node.outputs:
            self.defining_nodes[result] = node
        for operand in node.inputs:
            self.user_nodes.setdefault(operand, []).append(node)

    def to_dot(self) -> str:
        lines = ["digraph TensorGraph {", "  node [shape=box];"]
        lines += [f'  "{n.id}" [label="{n.op_name}"];' for n in self.nodes]
        for node in self.nodes:
            for output in node.outputs:
                for user in self.user_nodes.get(output, []):
                    lines.append(
                        f'  "{node.id}" -> "{user.id}" [label="{output.type}"];'
                    )
        lines.append("}")
        return "\n".join(lines) + "\n"

    def export_dot(self, path: str | Path) -> None:
        Path(path).write_text(self.to_dot(), encoding="utf-8")


def build_tensor_graph(module: Module) -> TensorGraph:
    """Build a graph of every tosa operation in the module."""
    graph = TensorGraph()
    for op in module.walk_operations():
        if op.dialect() == "tosa":
            graph.add_node(TensorNode(op))
    return graph