"""Liveness analysis over a tensor graph."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator

from .ir import Value
from .tensor_graph import TensorGraph
from .tensor_node import TensorNode


@dataclass
class LiveRange:
    def_node: TensorNode | None = None
    use_nodes: list[TensorNode] = field(default_factory=list)
    last_use_node: TensorNode | None = None


def _names(values) -> str:
    return "".join(f"{v} " for v in sorted(values, key=str))


class LivenessAnalysis:
    """Execution order, live sets and live ranges of a graph."""

    def __init__(self, graph: TensorGraph) -> None:
        self.topo_sorted_nodes: list[TensorNode] = []
        self.live_in: dict[TensorNode, set[Value]] = {}
        self.live_out: dict[TensorNode, set[Value]] = {}
        self.live_ranges: dict[Value, LiveRange] = {}
        self._topological_sort(graph)
        self._index = {n: i for i, n in enumerate(self.topo_sorted_nodes)}
        self._build_def_use(graph)
        self._compute_liveness()
        self._compute_live_ranges()

    @staticmethod
    def _successors(node: TensorNode, graph: TensorGraph) -> Iterator[TensorNode]:
        for output in node.outputs:
            yield from graph.user_nodes.get(output, [])

    def _topological_sort(self, graph: TensorGraph) -> None:
        visited: set[TensorNode] = set()
        order: list[TensorNode] = []
        for root in graph.nodes:
            if root in visited:
                continue
            on_path = {root}
            stack = [(root, self._successors(root, graph))]
            while stack:
                node, it = stack[-1]
                nxt = next(it, None)
                if nxt is None:
                    stack.pop()
                    on_path.discard(node)
                    visited.add(node)
                    order.append(node)
                elif nxt in on_path:
                    raise ValueError("cycle detected in graph")
                elif nxt not in visited:
                    on_path.add(nxt)
                    stack.append((nxt, self._successors(nxt, graph)))
        order.reverse()
        self.topo_sorted_nodes = order

    def _build_def_use(self, graph: TensorGraph) -> None:
        for node in graph.nodes:
            for output in node.outputs:
                self.live_ranges.setdefault(output, LiveRange()).def_node = node
            for value in node.inputs:
                if value in graph.defining_nodes:
                    self.live_ranges.setdefault(value, LiveRange()).use_nodes.append(node)

    def _compute_liveness(self) -> None:
        for node in self.topo_sorted_nodes:
            self.live_in[node] = set()
            self.live_out[node] = set()
        changed = True
        while changed:
            changed = False
            for node in reversed(self.topo_sorted_nodes):
                live_in, live_out = self.live_in[node], self.live_out[node]
                before = (len(live_in), len(live_out))
                for output in node.outputs:
                    rng = self.live_ranges.get(output)
                    for user in rng.use_nodes if rng else ():
                        live_out |= self.live_in[user]
                live_in.update(node.inputs)
                defined = set(node.outputs)
                live_in.update(v for v in live_out if v not in defined)
                if (len(live_in), len(live_out)) != before:
                    changed = True

    def _compute_live_ranges(self) -> None:
        for rng in self.live_ranges.values():
            if rng.use_nodes:
                rng.last_use_node = max(
                    rng.use_nodes, key=lambda n: self._index.get(n, -1)
                )
            else:
                rng.last_use_node = None

    def index_of(self, node: TensorNode | None) -> int:
        """Position in execution order; None maps past the end, unknown to -1."""
        if node is None:
            return len(self.topo_sorted_nodes)
        return self._index.get(node, -1)

    def report(self) -> str:
        out = ["Liveness Analysis Results:", "", "Execution Order (Topological Sort):"]
        out += [f"{i}: {n.id}" for i, n in enumerate(self.topo_sorted_nodes)]
        out += ["", "Node Liveness Information:"]
        for node in self.topo_sorted_nodes:
            out.append(f"Node: {node.id}")
            out.append(f"  Live-in: {_names(self.live_in[node])}")
            out.append(f"  Live-out: {_names(self.live_out[node])}")
            out.append("  DEF: " + "".join(f"{v} " for v in node.outputs))
            out.append("  USE: " + "".join(f"{v} " for v in node.inputs))
            out.append("")
        out += ["", "Tensor Value Live Ranges:"]
        for value, rng in self.live_ranges.items():
            out.append(f"Value: {value} (Type: {value.type})")
            def_id = rng.def_node.id if rng.def_node else ""
            out.append(f"  Defined at: {def_id}")
            out.append("  Used at: " + "".join(f"{n.id} " for n in rng.use_nodes))
            if rng.last_use_node is not None:
                out.append(f"  Last use at: {rng.last_use_node.id}")
            else:
                out.append("  No uses (dead code)")
            out.append("")
        out += ["", "Memory Optimization Opportunities:"]
        for node in self.topo_sorted_nodes:
            out.append(f"After node {node.id}:")
            dying = [v for v, r in self.live_ranges.items() if r.last_use_node is node]
            if dying:
                out.append("  Can free memory for: " + "".join(f"{v} " for v in dying))
            else:
                out.append("  No memory can be freed")
        return "\n".join(out) + "\n"