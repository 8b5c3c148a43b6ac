import pytest

from tosaplan.analyzer import TosaAnalyzer, main, parse_args

SAMPLE = """\
module {
  func.func @main(%arg0: tensor<1x4xf32>) -> tensor<1x4xf32> {
    %0 = tosa.add %arg0, %arg0 : (tensor<1x4xf32>, tensor<1x4xf32>) -> tensor<1x4xf32>
    %1 = tosa.mul %0, %0 : (tensor<1x4xf32>, tensor<1x4xf32>) -> tensor<1x4xf32>
    return %1 : tensor<1x4xf32>
  }
}
"""


@pytest.fixture
def paths(tmp_path):
    src = tmp_path / "model.mlir"
    src.write_text(SAMPLE, encoding="utf-8")
    return {
        "input": src,
        "dot": tmp_path / "graph.dot",
        "plan": tmp_path / "plan.h",
        "vis": tmp_path / "vis.html",
    }


def _analyzer(p):
    return TosaAnalyzer(p["input"], p["dot"], p["plan"], p["vis"])


def test_parse_args_defaults():
    args = parse_args(["-input", "model.mlir"])
    assert args.input == "model.mlir"
    assert args.dot == "tensorGrpah.dot"
    assert args.memory_plan == "memory_plan.h"
    assert args.memory_vis == "memory_vis.html"


def test_parse_args_equals_form():
    args = parse_args(["-input=m.mlir", "-memory-plan=out.h", "--memory-vis", "v.html"])
    assert args.input == "m.mlir"
    assert args.memory_plan == "out.h"
    assert args.memory_vis == "v.html"


def test_parse_args_requires_input():
    with pytest.raises(SystemExit):
        parse_args([])


def test_run_keeps_pipeline_state(paths):
    analyzer = _analyzer(paths)
    analyzer.run()
    assert len(analyzer.graph.nodes) == 2
    assert [n.op_name for n in analyzer.liveness.topo_sorted_nodes] == [
        "tosa.add",
        "tosa.mul",
    ]
    assert len(analyzer.memory_planner.allocations) == 2


def test_run_missing_input(tmp_path, capsys):
    analyzer = TosaAnalyzer(
        tmp_path / "absent.mlir", tmp_path / "g.dot", tmp_path / "p.h", tmp_path / "v.html"
    )
    assert analyzer.run() == 1
    assert "absent.mlir" in capsys.readouterr().err
    assert not (tmp_path / "g.dot").exists()


def test_run_malformed_input(paths, capsys):
    paths["input"].write_text("module {\n", encoding="utf-8")
    assert _analyzer(paths).run() == 1
    assert "Error parsing input file" in capsys.readouterr().err


def test_main_runs_pipeline(paths):
    status = main(
        [
            "-input", str(paths["input"]),
            "-liveness-visulize-dot", str(paths["dot"]),
            "-memory-plan", str(paths["plan"]),
            "-memory-vis", str(paths["vis"]),
        ]
    )
    assert status == 0
    assert paths["plan"].exists()
    assert paths["dot"].exists()
    assert paths["vis"].exists()