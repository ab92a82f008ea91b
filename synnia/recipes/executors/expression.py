# synnia/recipes/executors/expression.py
"""
Expression executor.

User expressions are parsed with ``ast`` and interpreted node by node over
a small whitelist: literals, input names, arithmetic, comparisons, boolean
logic, conditionals, subscripts, container displays, a handful of pure
builtins and string/list/dict methods. Anything else (attribute access
outside the method whitelist, lambdas, comprehensions, imports, dunder
names) is rejected before evaluation. Powers, string building and
call results are bounded so an expression cannot grow without limit.
"""

import ast
import math
import operator
from typing import Any, Callable, Dict

from ...errors import ExpressionError
from .base import ExecutionContext, ExecutionResult, Executor
from .utils import extract_value

MAX_EXPRESSION_LENGTH = 2000
MAX_POWER = 1000
MAX_SEQUENCE_LENGTH = 100_000
MAX_INT_BITS = 10_000

BINARY_OPS: Dict[type, Callable[[Any, Any], Any]] = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}

UNARY_OPS: Dict[type, Callable[[Any], Any]] = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
    ast.Not: operator.not_,
}

COMPARE_OPS: Dict[type, Callable[[Any, Any], bool]] = {
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
    ast.In: lambda a, b: a in b,
    ast.NotIn: lambda a, b: a not in b,
    ast.Is: operator.is_,
    ast.IsNot: operator.is_not,
}

SAFE_FUNCTIONS: Dict[str, Callable] = {
    "abs": abs,
    "all": all,
    "any": any,
    "bool": bool,
    "float": float,
    "int": int,
    "len": len,
    "list": list,
    "max": max,
    "min": min,
    "round": round,
    "sorted": sorted,
    "str": str,
    "sum": sum,
    "ceil": math.ceil,
    "floor": math.floor,
    "sqrt": math.sqrt,
}

SAFE_METHODS = {
    str: {"upper", "lower", "strip", "lstrip", "rstrip", "split", "join", "replace",
          "startswith", "endswith", "title", "capitalize", "count", "find"},
    list: {"index", "count"},
    dict: {"get", "keys", "values", "items"},
}

CONSTANTS = {"true": True, "false": False, "null": None, "pi": math.pi}


def _check_size(value: Any) -> Any:
    """Reject ints and sequences beyond the evaluator's limits."""
    if isinstance(value, int) and not isinstance(value, bool) and value.bit_length() > MAX_INT_BITS:
        raise ExpressionError("Result is too large")
    if isinstance(value, (str, list, tuple)) and len(value) > MAX_SEQUENCE_LENGTH:
        raise ExpressionError("Result is too large")
    return value


def _check_power(base: Any, exponent: Any) -> None:
    if not isinstance(exponent, (int, float)):
        return
    if abs(exponent) > MAX_POWER:
        raise ExpressionError("Exponent is too large")
    if isinstance(base, int) and isinstance(exponent, int) and abs(base) > 1 and exponent > 0 \
            and exponent * math.log2(abs(base)) > MAX_INT_BITS:
        raise ExpressionError("Result is too large")


def _bounded_replace(text: str) -> Callable:
    def replace(old, new, count=-1):
        if isinstance(old, str) and isinstance(new, str) and len(new) > len(old):
            hits = text.count(old) if old else len(text) + 1
            if isinstance(count, int) and count >= 0:
                hits = min(hits, count)
            if len(text) + hits * (len(new) - len(old)) > MAX_SEQUENCE_LENGTH:
                raise ExpressionError("Result is too large")
        return text.replace(old, new, count)
    return replace


def _bounded_join(separator: str) -> Callable:
    def join(items):
        items = list(items)
        total = len(separator) * max(len(items) - 1, 0)
        total += sum(len(item) for item in items if isinstance(item, str))
        if total > MAX_SEQUENCE_LENGTH:
            raise ExpressionError("Result is too large")
        return separator.join(items)
    return join


BOUNDED_METHODS = {"replace": _bounded_replace, "join": _bounded_join}


class Evaluator:
    """Walks a parsed expression with a fixed set of bound names."""

    def __init__(self, names: Dict[str, Any]):
        self.names = {**CONSTANTS, **names}

    def evaluate(self, source: str) -> Any:
        if len(source) > MAX_EXPRESSION_LENGTH:
            raise ExpressionError("Expression is too long")
        try:
            tree = ast.parse(source.strip(), mode="eval")
        except SyntaxError as e:
            raise ExpressionError(f"Invalid expression: {e.msg}") from None
        return self.visit(tree.body)

    def visit(self, node: ast.AST) -> Any:
        method = getattr(self, f"visit_{type(node).__name__}", None)
        if method is None:
            raise ExpressionError(f"Unsupported syntax: {type(node).__name__}")
        return method(node)

    def visit_Constant(self, node: ast.Constant) -> Any:
        return node.value

    def visit_Name(self, node: ast.Name) -> Any:
        if node.id.startswith("_"):
            raise ExpressionError(f"Access to '{node.id}' is not allowed")
        if node.id in self.names:
            return self.names[node.id]
        raise ExpressionError(f"Unknown name: {node.id}")

    def visit_BinOp(self, node: ast.BinOp) -> Any:
        op = BINARY_OPS.get(type(node.op))
        if op is None:
            raise ExpressionError(f"Unsupported operator: {type(node.op).__name__}")
        left, right = self.visit(node.left), self.visit(node.right)
        if isinstance(node.op, ast.Pow):
            _check_power(left, right)
        if isinstance(node.op, ast.Mult):
            for seq, count in ((left, right), (right, left)):
                if isinstance(seq, (str, list, tuple)) and isinstance(count, int) \
                        and len(seq) * count > MAX_SEQUENCE_LENGTH:
                    raise ExpressionError("Result is too large")
        try:
            return _check_size(op(left, right))
        except ZeroDivisionError:
            raise ExpressionError("Division by zero") from None
        except OverflowError:
            raise ExpressionError("Result is too large") from None
        except TypeError as e:
            raise ExpressionError(str(e)) from None

    def visit_UnaryOp(self, node: ast.UnaryOp) -> Any:
        op = UNARY_OPS.get(type(node.op))
        if op is None:
            raise ExpressionError(f"Unsupported operator: {type(node.op).__name__}")
        try:
            return op(self.visit(node.operand))
        except TypeError as e:
            raise ExpressionError(str(e)) from None

    def visit_BoolOp(self, node: ast.BoolOp) -> Any:
        result = None
        for value_node in node.values:
            result = self.visit(value_node)
            if isinstance(node.op, ast.And) and not result:
                return result
            if isinstance(node.op, ast.Or) and result:
                return result
        return result

    def visit_Compare(self, node: ast.Compare) -> bool:
        left = self.visit(node.left)
        for op_node, right_node in zip(node.ops, node.comparators):
            op = COMPARE_OPS.get(type(op_node))
            if op is None:
                raise ExpressionError(f"Unsupported comparison: {type(op_node).__name__}")
            right = self.visit(right_node)
            try:
                if not op(left, right):
                    return False
            except TypeError as e:
                raise ExpressionError(str(e)) from None
            left = right
        return True

    def visit_IfExp(self, node: ast.IfExp) -> Any:
        return self.visit(node.body) if self.visit(node.test) else self.visit(node.orelse)

    def visit_Subscript(self, node: ast.Subscript) -> Any:
        target = self.visit(node.value)
        if isinstance(node.slice, ast.Slice):
            key = slice(
                self.visit(node.slice.lower) if node.slice.lower else None,
                self.visit(node.slice.upper) if node.slice.upper else None,
                self.visit(node.slice.step) if node.slice.step else None,
            )
        else:
            key = self.visit(node.slice)
        try:
            return target[key]
        except (KeyError, IndexError, TypeError) as e:
            raise ExpressionError(f"Cannot index {type(target).__name__} with {key!r}: {e}") from None

    def visit_List(self, node: ast.List) -> list:
        return [self.visit(e) for e in node.elts]

    def visit_Tuple(self, node: ast.Tuple) -> tuple:
        return tuple(self.visit(e) for e in node.elts)

    def visit_Set(self, node: ast.Set) -> set:
        return {self.visit(e) for e in node.elts}

    def visit_Dict(self, node: ast.Dict) -> dict:
        if any(k is None for k in node.keys):
            raise ExpressionError("Dict unpacking is not allowed")
        return {self.visit(k): self.visit(v) for k, v in zip(node.keys, node.values)}

    def visit_Call(self, node: ast.Call) -> Any:
        if node.keywords and any(k.arg is None for k in node.keywords):
            raise ExpressionError("Keyword unpacking is not allowed")
        if any(isinstance(a, ast.Starred) for a in node.args):
            raise ExpressionError("Argument unpacking is not allowed")

        func = self._callable(node.func)
        args = [self.visit(a) for a in node.args]
        kwargs = {k.arg: self.visit(k.value) for k in node.keywords}
        try:
            return _check_size(func(*args, **kwargs))
        except (TypeError, ValueError, AttributeError) as e:
            raise ExpressionError(str(e)) from None

    def _callable(self, func: ast.AST) -> Callable:
        if isinstance(func, ast.Name):
            if func.id in SAFE_FUNCTIONS:
                return SAFE_FUNCTIONS[func.id]
            raise ExpressionError(f"Function '{func.id}' is not allowed")

        if isinstance(func, ast.Attribute):
            owner = self.visit(func.value)
            for owner_type, methods in SAFE_METHODS.items():
                if isinstance(owner, owner_type) and func.attr in methods:
                    if owner_type is str and func.attr in BOUNDED_METHODS:
                        return BOUNDED_METHODS[func.attr](owner)
                    return getattr(owner, func.attr)
            raise ExpressionError(f"Method '{func.attr}' is not allowed on {type(owner).__name__}")

        raise ExpressionError("Only named functions and whitelisted methods can be called")


def evaluate(expression: str, names: Dict[str, Any]) -> Any:
    """Evaluate ``expression`` with ``names`` bound."""
    return Evaluator(names).evaluate(expression)


def create_expression_executor(config: Dict[str, Any]) -> Executor:
    expression = config.get("expression", "")
    output_key = config.get("output_key") or config.get("outputKey") or "result"

    async def execute(ctx: ExecutionContext) -> ExecutionResult:
        names = {key: extract_value(value) for key, value in ctx.inputs.items()}
        try:
            result = evaluate(expression, names)
        except ExpressionError as e:
            return ExecutionResult.failure(str(e))
        except (ArithmeticError, TypeError, ValueError, RecursionError) as e:
            return ExecutionResult.failure(f"Expression evaluation failed: {e}")
        return ExecutionResult(success=True, data={output_key: result})

    return execute
