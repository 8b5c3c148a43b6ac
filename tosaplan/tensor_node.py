"""Graph nodes wrapping single operations."""

from __future__ import annotations

from .ir import Operation, Value


class TensorNode:
    """One operation of the data-flow graph."""

    def __init__(self, operation: Operation) -> None:
        self.operation = operation
        self.op_name: str = operation.name
        self.id: str = f"{operation.name}_{id(operation)}"
        self.op_type_name: str = operation.dialect()
        self.inputs: list[Value] = list(operation.operands)
        self.outputs: list[Value] = list(operation.results)
        self.attributes: dict[str, str] = dict(sorted(operation.attributes.items()))

    def __repr__(self) -> str:
        return f"TensorNode({self.id!r})"

    def attribute(self, name: str) -> str:
        """Return the attribute text, or an empty string if absent."""
        return self.attributes.get(name, "")

    def is_dialect(self, dialect_name: str) -> bool:
        return self.op_type_name == dialect_name

    def is_op_type(self, op_type: str) -> bool:
        return self.op_name == op_type

    def describe(self) -> str:
        lines = [f"Operation: {self.op_name}", f"Dialect: {self.op_type_name}"]
        lines.append(f"Inputs ({len(self.inputs)}):")
        lines += [f"  [{i}] {v} : {v.type}" for i, v in enumerate(self.inputs)]
        lines.append(f"Outputs ({len(self.outputs)}):")
        lines += [f"  [{i}] {v} : {v.type}" for i, v in enumerate(self.outputs)]
        lines.append(f"Attributes ({len(self.attributes)}):")
        lines += [f"  {k} = {v}" for k, v in self.attributes.items()]
        return "\n".join(lines) + "\n"