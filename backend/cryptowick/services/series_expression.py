from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from cryptowick.services import maths
from cryptowick.services.trade_analysis import TradeAnalysis


class ExpressionError(RuntimeError):
    """Raised when a series expression cannot be evaluated."""


# -----------------------------------------------------------------------------
# AST nodes
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class Node:
    node_type: str

    def to_dict(self) -> Dict[str, Any]:
        raise NotImplementedError


@dataclass(frozen=True)
class NumberNode(Node):
    value: float

    def __init__(self, value: float) -> None:
        object.__setattr__(self, "node_type", "NUMBER")
        object.__setattr__(self, "value", float(value))

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.node_type, "value": self.value}


@dataclass(frozen=True)
class IdentNode(Node):
    name: str

    def __init__(self, name: str) -> None:
        object.__setattr__(self, "node_type", "IDENT")
        object.__setattr__(self, "name", name)

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.node_type, "name": self.name}


@dataclass(frozen=True)
class CallNode(Node):
    callee: "ExprNode"
    args: Tuple["ExprNode", ...]

    def __init__(self, callee: "ExprNode", args: Sequence["ExprNode"]) -> None:
        object.__setattr__(self, "node_type", "CALL")
        object.__setattr__(self, "callee", callee)
        object.__setattr__(self, "args", tuple(args))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.node_type,
            "callee": node_to_dict(self.callee),
            "args": [node_to_dict(a) for a in self.args],
        }


ExprNode = NumberNode | IdentNode | CallNode


def node_to_dict(node: ExprNode) -> Dict[str, Any]:
    return node.to_dict()


def node_from_dict(data: Dict[str, Any]) -> ExprNode:
    t = data.get("type")
    if t == "NUMBER":
        return NumberNode(float(data.get("value", 0)))
    if t == "IDENT":
        return IdentNode(str(data.get("name", "")))
    if t == "CALL":
        return CallNode(
            node_from_dict(data.get("callee") or {}),
            [node_from_dict(a) for a in (data.get("args") or [])],
        )
    raise ExpressionError(f"Unknown AST node type '{t}'")


def dumps_ast(node: ExprNode) -> str:
    return json.dumps(node_to_dict(node))


def loads_ast(raw: str) -> ExprNode:
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ExpressionError("Invalid AST JSON") from exc
    if not isinstance(data, dict):
        raise ExpressionError("AST JSON must be an object")
    return node_from_dict(data)


# -----------------------------------------------------------------------------
# Evaluation
# -----------------------------------------------------------------------------

Series = List[float]

_PRICE_SERIES = {"open", "high", "low", "close"}

_BINARY_OPS: Dict[str, Callable[[float, float], float]] = {
    "add": lambda a, b: a + b,
    "sub": lambda a, b: a - b,
    "mul": lambda a, b: a * b,
    "div": maths.div_no_nan,
}


def _expect_arity(name: str, args: Sequence[ExprNode], expected: int) -> None:
    if len(args) != expected:
        plural = "argument" if expected == 1 else "arguments"
        raise ExpressionError(
            f"{name} expects {expected} {plural}, but received {len(args)}"
        )


def _window_length(name: str, node: ExprNode, minimum: int) -> int:
    if not isinstance(node, NumberNode):
        raise ExpressionError(
            f"{name} expects a number literal as its first argument"
        )
    value = node.value
    if not math.isfinite(value) or value != int(value) or value < minimum:
        raise ExpressionError(
            f"{name} window length must be an integer >= {minimum}, got {value:g}"
        )
    return int(value)


def _eval_ident(node: IdentNode, analysis: TradeAnalysis) -> Series:
    if node.name not in _PRICE_SERIES:
        raise ExpressionError(f"Unknown identifier: {node.name}")
    return list(getattr(analysis, f"{node.name}s"))


def _eval_call(node: CallNode, analysis: TradeAnalysis) -> Series:
    if not isinstance(node.callee, IdentNode):
        raise ExpressionError("Invalid function call: callee must be a name")

    name = node.callee.name
    args = node.args

    op = _BINARY_OPS.get(name)
    if op is not None:
        _expect_arity(name, args, 2)
        return maths.combine_series(
            evaluate(args[0], analysis), evaluate(args[1], analysis), op
        )

    if name == "sma":
        _expect_arity(name, args, 2)
        lookback = _window_length(name, args[0], 1)
        return maths.lagging_simple_moving_average(evaluate(args[1], analysis), lookback)

    if name == "ddt1st":
        _expect_arity(name, args, 1)
        return maths.moving_derivative(evaluate(args[0], analysis), 1)

    if name == "ddt2nd":
        _expect_arity(name, args, 1)
        return maths.moving_second_derivative(evaluate(args[0], analysis), 1)

    if name == "linRegSlope":
        _expect_arity(name, args, 2)
        lookback = _window_length(name, args[0], 2)
        return maths.lagging_linear_regression_slopes(
            evaluate(args[1], analysis), lookback
        )

    raise ExpressionError(f"Unknown function: {name}")


def evaluate(node: ExprNode, analysis: TradeAnalysis) -> Series:
    """Evaluate `node` to a series with one value per candlestick.

    Raises ExpressionError for unknown names, wrong arity or argument types.
    Neither the node nor the analysis is modified.
    """

    if isinstance(node, NumberNode):
        return [node.value] * analysis.candlestick_count
    if isinstance(node, IdentNode):
        return _eval_ident(node, analysis)
    if isinstance(node, CallNode):
        return _eval_call(node, analysis)
    raise ExpressionError(f"Unsupported AST node: {node!r}")


@dataclass
class EvaluationResult:
    values: Optional[Series]
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.values is not None


def evaluate_formula(text: str, analysis: TradeAnalysis) -> EvaluationResult:
    """Parse and evaluate a formula, reporting problems instead of raising."""

    from cryptowick.services.series_expression_dsl import parse_expression

    errors: List[str] = []
    node = parse_expression(text, errors)
    if node is None:
        return EvaluationResult(values=None, errors=errors or ["Formula rejected"])
    try:
        values = evaluate(node, analysis)
    except ExpressionError as exc:
        return EvaluationResult(values=None, errors=[str(exc)])
    if not all(math.isfinite(v) for v in values):
        return EvaluationResult(
            values=None, errors=["Formula produced a non-finite value"]
        )
    return EvaluationResult(values=values)


__all__ = [
    "CallNode",
    "EvaluationResult",
    "ExprNode",
    "ExpressionError",
    "IdentNode",
    "NumberNode",
    "dumps_ast",
    "evaluate",
    "evaluate_formula",
    "loads_ast",
    "node_from_dict",
    "node_to_dict",
]
