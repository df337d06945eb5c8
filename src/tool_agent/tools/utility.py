"""
Local utility tools: calculator, clock and scratchpad.
"""

import ast
import asyncio
import math
import operator
import re
from datetime import datetime
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog

from .base import BaseTool, ToolContext, ToolResult

logger = structlog.get_logger()

MAX_EXPRESSION_LENGTH = 500
EXPRESSION_PATTERN = re.compile(r"^[0-9+\-*/().^%\s,a-zA-Z_]+$")
TIMEZONE_PATTERN = re.compile(r"^[a-zA-Z0-9_/+-]+$")
MAX_TIMEZONE_LENGTH = 50
MAX_EXPONENT = 10000
MAX_RESULT_BITS = 10000
MAX_FACTORIAL = 1000


def _check_size(value: Any) -> Any:
    if isinstance(value, int) and value.bit_length() > MAX_RESULT_BITS:
        raise ValueError("Result is too large.")
    return value


def _power(base: Any, exponent: Any) -> Any:
    if abs(exponent) > MAX_EXPONENT:
        raise ValueError("Exponent is too large.")
    if isinstance(base, int) and isinstance(exponent, int) and exponent > 0 and abs(base) > 1:
        # Estimated size of the result, checked before computing it
        if math.log2(abs(base)) * exponent > MAX_RESULT_BITS:
            raise ValueError("Result is too large.")
    return operator.pow(base, exponent)


def _factorial(n: Any) -> int:
    if not isinstance(n, int) or n > MAX_FACTORIAL:
        raise ValueError(f"factorial() only accepts integers up to {MAX_FACTORIAL}.")
    return math.factorial(n)


SAFE_BIN_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Mod: operator.mod,
    ast.FloorDiv: operator.floordiv,
}
SAFE_UNARY_OPS = {ast.UAdd: lambda v: v, ast.USub: lambda v: -v}
SAFE_NAMES = {
    "pi": math.pi,
    "e": math.e,
    "tau": math.tau,
    "inf": math.inf,
}
SAFE_FUNCS = {
    "abs": abs,
    "round": round,
    "min": min,
    "max": max,
    "sqrt": math.sqrt,
    "cbrt": lambda x: math.copysign(abs(x) ** (1 / 3), x),
    "exp": math.exp,
    "log": math.log,
    "log10": math.log10,
    "log2": math.log2,
    "ln": math.log,
    "sin": math.sin,
    "cos": math.cos,
    "tan": math.tan,
    "asin": math.asin,
    "acos": math.acos,
    "atan": math.atan,
    "atan2": math.atan2,
    "sinh": math.sinh,
    "cosh": math.cosh,
    "tanh": math.tanh,
    "floor": math.floor,
    "ceil": math.ceil,
    "factorial": _factorial,
    "pow": math.pow,
}


def safe_eval_math(expr: str) -> float | int:
    """Evaluate an arithmetic expression over a whitelist of operators and functions.

    ``^`` is treated as exponentiation. Anything outside the whitelist
    raises ValueError.
    """
    tree = ast.parse(expr.replace("^", "**"), mode="eval")

    def _eval(node: ast.AST) -> Any:
        if isinstance(node, ast.Expression):
            return _eval(node.body)
        if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)) and not isinstance(node.value, bool):
            return node.value
        if isinstance(node, ast.BinOp):
            if isinstance(node.op, ast.Pow):
                return _check_size(_power(_eval(node.left), _eval(node.right)))
            if type(node.op) in SAFE_BIN_OPS:
                return _check_size(SAFE_BIN_OPS[type(node.op)](_eval(node.left), _eval(node.right)))
        if isinstance(node, ast.UnaryOp) and type(node.op) in SAFE_UNARY_OPS:
            return SAFE_UNARY_OPS[type(node.op)](_eval(node.operand))
        if isinstance(node, ast.Call) and isinstance(node.func, ast.Name):
            func = SAFE_FUNCS.get(node.func.id)
            if func is None or node.keywords:
                raise ValueError(f"Unknown function: {node.func.id}")
            return _check_size(func(*[_eval(arg) for arg in node.args]))
        if isinstance(node, ast.Name):
            if node.id in SAFE_NAMES:
                return SAFE_NAMES[node.id]
            raise ValueError(f"Undefined symbol: {node.id}")
        raise ValueError("Unsupported expression.")

    return _eval(tree)


def format_number(value: float | int) -> str:
    if isinstance(value, float) and value.is_integer() and abs(value) < 1e15:
        return str(int(value))
    return str(value)


class CalculateTool(BaseTool):
    """Evaluate a math expression without executing code."""

    @property
    def name(self) -> str:
        return "calculate"

    async def execute(self, context: ToolContext, expression: str, **kwargs: Any) -> ToolResult:
        expr = expression.strip()
        if not expr:
            return ToolResult.fail("Expression cannot be empty.")
        if len(expr) > MAX_EXPRESSION_LENGTH:
            return ToolResult.fail("Expression is too long.")
        if not EXPRESSION_PATTERN.match(expr):
            return ToolResult.fail("Expression contains invalid characters.")

        try:
            result = await asyncio.to_thread(safe_eval_math, expr)
        except (SyntaxError, ValueError, TypeError, ZeroDivisionError, OverflowError) as e:
            logger.info("Calculation failed", expression=expr, error=str(e))
            return ToolResult.fail(str(e) or "Invalid expression.")

        if not isinstance(result, (int, float)) or isinstance(result, bool):
            return ToolResult.fail("Invalid result.")
        if isinstance(result, float) and not math.isfinite(result):
            return ToolResult.fail("Invalid result.")

        return ToolResult.ok(f"{expression} = {format_number(result)}", data=result)


class GetTimeTool(BaseTool):
    """Report the current time in an IANA timezone."""

    @property
    def name(self) -> str:
        return "get_time"

    async def execute(self, context: ToolContext, timezone: str | None = None, **kwargs: Any) -> ToolResult:
        tz = (timezone or "").strip() or "UTC"
        if len(tz) > MAX_TIMEZONE_LENGTH or not TIMEZONE_PATTERN.match(tz):
            return ToolResult.fail("Invalid timezone format.")

        try:
            zone = ZoneInfo(tz)
        except (ZoneInfoNotFoundError, ValueError):
            return ToolResult.fail("Invalid timezone specified.")

        now = datetime.now(zone)
        formatted = now.strftime("%A, %B %d, %Y at %I:%M:%S %p %Z")
        return ToolResult.ok(f"Current time in {tz}: {formatted}", data=now.isoformat())


class ThinkTool(BaseTool):
    """Scratchpad for intermediate reasoning. Has no side effects."""

    @property
    def name(self) -> str:
        return "think"

    async def execute(self, context: ToolContext, thought: str, **kwargs: Any) -> ToolResult:
        return ToolResult.ok(f"Thought recorded: {thought}")
