"""Command-line driver: parse a module, analyse liveness and plan memory."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from .ir import Module, ParseError, parse_module
from .liveness import LivenessAnalysis
from .memory_planner import MemoryPlanner
from .memory_report import (
    memory_statistics,
    write_allocation_code,
    write_memory_visualization,
)
from .tensor_graph import TensorGraph, build_tensor_graph

DEFAULT_DOT_FILE = "tensorGrpah.dot"
DEFAULT_PLAN_FILE = "memory_plan.h"
DEFAULT_VIS_FILE = "memory_vis.html"


def _error(message: str) -> None:
    print(message, file=sys.stderr)


class TosaAnalyzer:
    """Runs the whole analysis pipeline for one input file."""

    def __init__(
        self,
        input_file: str | Path,
        dot_file: str | Path,
        plan_file: str | Path,
        vis_file: str | Path,
    ) -> None:
        self.input_file = Path(input_file)
        self.dot_file = Path(dot_file)
        self.plan_file = Path(plan_file)
        self.vis_file = Path(vis_file)
        self.module: Module | None = None
        self.graph: TensorGraph | None = None
        self.liveness: LivenessAnalysis | None = None
        self.memory_planner: MemoryPlanner | None = None

    def _load(self) -> bool:
        try:
            text = self.input_file.read_text(encoding="utf-8")
        except OSError as exc:
            _error(f"Could not open input file {self.input_file}: {exc.strerror or exc}")
            return False
        try:
            self.module = parse_module(text)
        except ParseError as exc:
            _error(f"Error parsing input file: {exc}")
            return False
        print("Parsed MLIR Module:")
        print(text, end="" if text.endswith("\n") else "\n")
        return True

    def _export_dot(self) -> None:
        try:
            self.graph.export_dot(self.dot_file)
        except OSError as exc:
            _error(f"Error opening file {self.dot_file}: {exc.strerror or exc}")
            return
        print(f"Graph exported to {self.dot_file}")

    def _plan_memory(self) -> None:
        print("\nPlanning memory allocation...")
        planner = MemoryPlanner(self.graph, self.liveness)
        self.memory_planner = planner
        planner.compute_tensor_sizes()
        planner.build_allocation_plan()
        planner.optimize()
        for writer, path in (
            (write_allocation_code, self.plan_file),
            (write_memory_visualization, self.vis_file),
        ):
            try:
                writer(planner, path)
            except OSError as exc:
                _error(f"Error opening file {path}: {exc.strerror or exc}")
        print("Memory planning complete!")

    def run(self) -> int:
        """Run every stage; return a process exit status."""
        if not self._load():
            return 1
        print("\nbuild tensor graph")
        self.graph = build_tensor_graph(self.module)
        print(f"Created {len(self.graph.nodes)} nodes in the dataflow graph")
        self._export_dot()

        print("\nPerforming liveness analysis...")
        self.liveness = LivenessAnalysis(self.graph)
        self._plan_memory()

        print(self.liveness.report(), end="")
        print(memory_statistics(self.memory_planner), end="")
        print("\nAnalysis complete.")
        return 0


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="MLIR TOSA Model Liveness Analyzer")
    parser.add_argument(
        "-input", "--input", dest="input", required=True, help="Input MLIR file"
    )
    parser.add_argument(
        "-liveness-visulize-dot",
        "--liveness-visulize-dot",
        dest="dot",
        default=DEFAULT_DOT_FILE,
        help="Output DOT file for graph visualization",
    )
    parser.add_argument(
        "-memory-plan",
        "--memory-plan",
        dest="memory_plan",
        default=DEFAULT_PLAN_FILE,
        help="Output file for memory allocation plan",
    )
    parser.add_argument(
        "-memory-vis",
        "--memory-vis",
        dest="memory_vis",
        default=DEFAULT_VIS_FILE,
        help="Output file for memory usage visualization",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(message)s", stream=sys.stdout)
    return TosaAnalyzer(args.input, args.dot, args.memory_plan, args.memory_vis).run()


if __name__ == "__main__":
    raise SystemExit(main())