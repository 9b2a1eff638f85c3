"""Built-in utility tools."""

import ast
import logging
import math
import operator
from datetime import datetime
from zoneinfo import ZoneInfo

from pydantic import Field

from lunar.config import settings
from lunar.tools.base import ToolParams, ToolResult
from lunar.tools.registry import registry

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# get_current_datetime
# ---------------------------------------------------------------------------


@registry.tool(
    name="get_current_datetime",
    description="Get the current date, time, and day of the week in the configured timezone.",
    category="utility",
)
async def get_current_datetime() -> ToolResult:
    tz = settings.scheduler_timezone
    now = datetime.now(ZoneInfo(tz))
    return ToolResult(
        data={
            "datetime": now.isoformat(),
            "date": now.strftime("%Y-%m-%d"),
            "time": now.strftime("%H:%M:%S"),
            "day_of_week": now.strftime("%A"),
            "timezone": tz,
        }
    )


# ---------------------------------------------------------------------------
# calculator
# ---------------------------------------------------------------------------

_BINARY_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}
_UNARY_OPS = {ast.UAdd: operator.pos, ast.USub: operator.neg}
_FUNCTIONS = {
    "abs": abs,
    "round": round,
    "min": min,
    "max": max,
    "sqrt": math.sqrt,
    "log": math.log,
    "sin": math.sin,
    "cos": math.cos,
    "tan": math.tan,
}
_CONSTANTS = {"pi": math.pi, "e": math.e, "tau": math.tau}
_MAX_DEPTH = 40
_MAX_BASE = 1_000_000
_MAX_BITS = 4096


def evaluate(expression: str) -> float:
    """Evaluate plain arithmetic. Raises ValueError on anything else."""
    try:
        tree = ast.parse(expression, mode="eval")
    except SyntaxError as exc:
        msg = f"invalid expression: {exc.msg}"
        raise ValueError(msg) from exc
    return _eval(tree.body, 0)


def _eval(node: ast.AST, depth: int) -> float:
    if depth > _MAX_DEPTH:
        msg = "expression is too complex"
        raise ValueError(msg)

    if isinstance(node, ast.Constant):
        if isinstance(node.value, bool) or not isinstance(node.value, int | float):
            msg = "only numeric literals are allowed"
            raise ValueError(msg)
        return node.value

    if isinstance(node, ast.BinOp):
        op = _BINARY_OPS.get(type(node.op))
        if op is None:
            msg = "operator is not allowed"
            raise ValueError(msg)
        left = _eval(node.left, depth + 1)
        right = _eval(node.right, depth + 1)
        if isinstance(node.op, ast.Pow):
            if abs(right) > 64:
                msg = "exponent is too large (max 64)"
                raise ValueError(msg)
            if abs(left) > _MAX_BASE:
                msg = f"base is too large (max {_MAX_BASE:,})"
                raise ValueError(msg)
        result = op(left, right)
        if isinstance(result, int) and result.bit_length() > _MAX_BITS:
            msg = "result is too large"
            raise ValueError(msg)
        return result

    if isinstance(node, ast.UnaryOp):
        op = _UNARY_OPS.get(type(node.op))
        if op is None:
            msg = "unary operator is not allowed"
            raise ValueError(msg)
        return op(_eval(node.operand, depth + 1))

    if isinstance(node, ast.Call):
        if not isinstance(node.func, ast.Name) or node.func.id not in _FUNCTIONS:
            msg = "function is not allowed"
            raise ValueError(msg)
        if node.keywords:
            msg = "keyword arguments are not allowed"
            raise ValueError(msg)
        return _FUNCTIONS[node.func.id](*(_eval(arg, depth + 1) for arg in node.args))

    if isinstance(node, ast.Name) and node.id in _CONSTANTS:
        return _CONSTANTS[node.id]

    msg = "unsupported expression element"
    raise ValueError(msg)


class CalculatorParams(ToolParams):
    expression: str = Field(description="Arithmetic expression, e.g. '(3 + 4) * 2 ** 3'")


@registry.tool(
    name="calculator",
    description="Evaluate an arithmetic expression exactly instead of doing mental math.",
    category="utility",
    params_model=CalculatorParams,
)
async def calculator(expression: str) -> ToolResult:
    try:
        result = evaluate(expression)
    except (ValueError, TypeError, ZeroDivisionError, OverflowError) as exc:
        return ToolResult(error=f"Error evaluating '{expression}': {exc}")
    return ToolResult(data={"expression": expression, "result": result})
