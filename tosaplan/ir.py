"""A small reader for textual MLIR modules built from tensor operations."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator

_OPEN = "<([{"
_CLOSE = ">)]}"

_RESULTS_RE = re.compile(
    r"^(%[\w$.-]+(?::\d+)?(?:\s*,\s*%[\w$.-]+(?::\d+)?)*)\s*=\s*(.*)$", re.S
)
_OP_NAME_RE = re.compile(r'"([^"]+)"|([A-Za-z_][\w.]*)')
_OPERAND_RE = re.compile(r"%[\w$.-]+(?:#\d+)?")
_FUNC_RE = re.compile(
    r'^func(?:\.func)?\s+(?:(?:private|public|nested)\s+)?@([\w$.-]+|"[^"]*")\s*(?=\()'
)
_DIM_RE = re.compile(r"(\d+|\?)x")
_INT_RE = re.compile(r"[su]?i(\d+)")


class ParseError(ValueError):
    """Raised when module text cannot be understood."""


def _split_top(text: str, sep: str) -> list[str]:
    """Split ``text`` on ``sep`` where it is not nested in brackets or quotes."""
    parts: list[str] = []
    depth = 0
    start = 0
    i = 0
    quote = False
    while i < len(text):
        ch = text[i]
        if quote:
            if ch == "\\":
                i += 2
                continue
            if ch == '"':
                quote = False
        elif depth == 0 and text.startswith(sep, i):
            parts.append(text[start:i])
            i += len(sep)
            start = i
            continue
        elif ch == '"':
            quote = True
        elif text.startswith("->", i):
            i += 2
            continue
        elif ch in _OPEN:
            depth += 1
        elif ch in _CLOSE:
            depth -= 1
        i += 1
    parts.append(text[start:])
    return parts


def _match(text: str, start: int) -> int:
    """Return the index of the bracket closing the one at ``start``."""
    depth = 0
    quote = False
    i = start
    while i < len(text):
        ch = text[i]
        if quote:
            if ch == "\\":
                i += 2
                continue
            if ch == '"':
                quote = False
        elif ch == '"':
            quote = True
        elif text.startswith("->", i):
            i += 2
            continue
        elif ch in _OPEN:
            depth += 1
        elif ch in _CLOSE:
            depth -= 1
            if depth == 0:
                return i
        i += 1
    raise ParseError(f"unbalanced brackets in {text!r}")


def _strip_comment(line: str) -> str:
    quote = False
    for i, ch in enumerate(line):
        if ch == '"':
            quote = not quote
        elif not quote and line.startswith("//", i):
            return line[:i]
    return line


@dataclass(frozen=True)
class TensorType:
    """A shaped type (tensor, memref, vector) or a scalar type."""

    shape: tuple[int, ...]
    element_type: str
    container: str | None = None

    @property
    def is_shaped(self) -> bool:
        return self.container is not None

    @classmethod
    def parse(cls, text: str) -> TensorType:
        text = text.strip()
        if not text:
            raise ParseError("empty type")
        m = re.fullmatch(r"(tensor|memref|vector)<(.*)>", text, re.S)
        if not m:
            if any(c.isspace() for c in text) and not text.startswith("!"):
                raise ParseError(f"malformed type {text!r}")
            return cls((), text, None)
        container, body = m.group(1), m.group(2).strip()
        if body.startswith("*"):
            raise ParseError(f"unranked type {text!r} is not supported")
        dims: list[int] = []
        while (d := _DIM_RE.match(body)) is not None:
            dims.append(-1 if d.group(1) == "?" else int(d.group(1)))
            body = body[d.end():]
        element = _split_top(body, ",")[0].strip()
        if not element:
            raise ParseError(f"missing element type in {text!r}")
        return cls(tuple(dims), element, container)

    def integer_width(self) -> int | None:
        """Bit width of an integer element type, or None."""
        m = _INT_RE.fullmatch(self.element_type)
        return int(m.group(1)) if m else None

    @property
    def is_int_or_index(self) -> bool:
        return self.integer_width() is not None or self.element_type == "index"

    def __str__(self) -> str:
        if self.container is None:
            return self.element_type
        dims = "".join(("?" if d < 0 else str(d)) + "x" for d in self.shape)
        return f"{self.container}<{dims}{self.element_type}>"


@dataclass(eq=False)
class Value:
    """An SSA value; ``owner`` is None for function arguments."""

    name: str
    type: TensorType
    owner: Operation | None = field(default=None, repr=False)

    def __str__(self) -> str:
        return self.name


@dataclass(eq=False)
class Operation:
    name: str
    operands: list[Value] = field(default_factory=list)
    results: list[Value] = field(default_factory=list)
    attributes: dict[str, str] = field(default_factory=dict)

    def dialect(self) -> str:
        head, dot, _ = self.name.partition(".")
        return head if dot else ""


@dataclass(eq=False)
class Function:
    name: str
    arguments: list[Value] = field(default_factory=list)
    operations: list[Operation] = field(default_factory=list)


@dataclass(eq=False)
class Module:
    functions: list[Function] = field(default_factory=list)

    def walk_operations(self) -> Iterator[Operation]:
        for function in self.functions:
            yield from function.operations


def _parse_attributes(inner: str) -> dict[str, str]:
    attrs: dict[str, str] = {}
    for entry in _split_top(inner, ","):
        entry = entry.strip()
        if not entry:
            continue
        key, eq, value = entry.partition("=")
        attrs[key.strip().strip('"')] = value.strip() if eq else "unit"
    return attrs


def _split_head(head: str) -> tuple[str, dict[str, str]]:
    kept: list[str] = []
    attrs: dict[str, str] = {}
    i = 0
    while i < len(head):
        if head.startswith("<{", i):
            end = _match(head, i)
            attrs.update(_parse_attributes(head[i + 2:end - 1]))
            i = end + 1
        elif head[i] == "{":
            end = _match(head, i)
            attrs.update(_parse_attributes(head[i + 1:end]))
            i = end + 1
        else:
            kept.append(head[i])
            i += 1
    return "".join(kept), attrs


def _result_types(sig: str) -> list[TensorType]:
    arrow = _split_top(sig, "->")
    out = arrow[-1].strip()
    if len(arrow) > 1 and out.startswith("(") and out.endswith(")"):
        out = out[1:-1]
    return [TensorType.parse(t) for t in _split_top(out, ",") if t.strip()]


def _parse_operation(line: str, scope: dict[str, Value]) -> Operation:
    result_names: list[str] = []
    body = line
    m = _RESULTS_RE.match(line)
    if m:
        for item in m.group(1).split(","):
            name, _, count = item.strip().partition(":")
            if count:
                result_names.extend(f"{name}#{i}" for i in range(int(count)))
            else:
                result_names.append(name)
        body = m.group(2)
    nm = _OP_NAME_RE.match(body)
    if not nm:
        raise ParseError(f"cannot find operation name in {line!r}")
    op_name = nm.group(1) or nm.group(2)
    if "." not in op_name:
        op_name = f"func.{op_name}"
    parts = _split_top(body[nm.end():], ":")
    head, sig = parts[0], ":".join(parts[1:])
    operand_text, attrs = _split_head(head)
    operands = []
    for ref in _OPERAND_RE.findall(operand_text):
        if ref not in scope:
            raise ParseError(f"use of undefined value {ref}")
        operands.append(scope[ref])
    op = Operation(op_name, operands, [], attrs)
    if result_names:
        if not sig.strip():
            raise ParseError(f"missing result type in {line!r}")
        types = _result_types(sig)
        if len(types) == 1:
            types = types * len(result_names)
        if len(types) != len(result_names):
            raise ParseError(f"result count does not match types in {line!r}")
        for name, ty in zip(result_names, types):
            value = Value(name, ty, op)
            op.results.append(value)
            scope[name] = value
    return op


def _parse_function_header(line: str) -> tuple[Function, bool]:
    m = _FUNC_RE.match(line)
    assert m is not None
    open_idx = m.end()
    close_idx = _match(line, open_idx)
    function = Function(m.group(1).strip('"'))
    for arg in _split_top(line[open_idx + 1:close_idx], ","):
        arg = arg.strip()
        if not arg:
            continue
        name, colon, rest = arg.partition(":")
        if not colon:
            raise ParseError(f"argument without type: {arg!r}")
        ty = TensorType.parse(_split_top(rest, "{")[0])
        function.arguments.append(Value(name.strip(), ty))
    return function, line.rstrip().endswith("{")


def parse_module(text: str) -> Module:
    """Parse module text into a :class:`Module`."""
    module = Module()
    stack: list[str] = []
    function: Function | None = None
    scope: dict[str, Value] = {}
    for lineno, raw in enumerate(text.splitlines(), 1):
        line = _strip_comment(raw).strip()
        if not line:
            continue
        try:
            if line == "}":
                if not stack:
                    raise ParseError("unmatched '}'")
                if stack.pop() == "func":
                    function = None
            elif function is None:
                if line.startswith("module") and line.endswith("{"):
                    stack.append("module")
                elif _FUNC_RE.match(line):
                    new_function, has_body = _parse_function_header(line)
                    module.functions.append(new_function)
                    if has_body:
                        function = new_function
                        scope = {a.name: a for a in function.arguments}
                        stack.append("func")
                else:
                    raise ParseError(f"unexpected text {line!r}")
            else:
                if line.endswith("{"):
                    raise ParseError("operations with regions are not supported")
                function.operations.append(_parse_operation(line, scope))
        except ParseError as exc:
            raise ParseError(f"line {lineno}: {exc}") from None
    if stack:
        raise ParseError("unexpected end of input: unclosed block")
    return module


def parse_file(path: str | Path) -> Module:
    """Read and parse a module file."""
    return parse_module(Path(path).read_text(encoding="utf-8"))