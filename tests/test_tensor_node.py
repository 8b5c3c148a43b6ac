from tosaplan.ir import parse_module
from tosaplan.tensor_node import TensorNode

TEXT = """
func.func @f(%a: tensor<1x4xf32>, %b: tensor<1x4xf32>) {
  %0 = tosa.mul %a, %b {shift = 0 : i8, alpha = 1} : (tensor<1x4xf32>, tensor<1x4xf32>) -> tensor<1x4xf32>
}
"""


def _node():
    op = next(parse_module(TEXT).walk_operations())
    return op, TensorNode(op)


def test_node_fields():
    op, node = _node()
    assert node.id.startswith("tosa.mul_")
    assert node.op_name == "tosa.mul"
    assert node.inputs == op.operands
    assert node.outputs == op.results
    assert list(node.attributes) == sorted(op.attributes)


def test_attribute_lookup():
    _, node = _node()
    assert node.attribute("shift") == "0 : i8"
    assert node.attribute("missing") == ""


def test_dialect_and_type_checks():
    _, node = _node()
    assert node.is_dialect("tosa")
    assert not node.is_dialect("func")
    assert node.is_op_type("tosa.mul")
    assert not node.is_op_type("tosa.add")


def test_describe():
    _, node = _node()
    text = node.describe()
    assert text.startswith("Operation: tosa.mul\nDialect: tosa\n")
    assert "Inputs (2):" in text
    assert "  [0] %a : tensor<1x4xf32>" in text
    assert "  shift = 0 : i8" in text