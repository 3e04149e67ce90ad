"""Arithmetic expressions over named float arguments.

    expr   := term (("+" | "-") term)*
    term   := power (("*" | "/") power)*
    power  := unary ("^" unary)*
    unary  := ("+" | "-") unary | atom
    atom   := NUMBER | NAME | NAME "(" expr ")" | "(" expr ")"

All binary operators are left-associative, `^` included: `2^3^2` is 64. Unary
signs bind tighter than `^`, so `-2^2` is 4.

Names that are neither constants nor functions are the expression's arguments.
"""

import math
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from functools import lru_cache

from core.errors import ExpressionError

FUNCTIONS: dict[str, Callable[[float], float]] = {
    "abs": abs,
    "signum": lambda x: math.copysign(1.0, x),
    "sin": math.sin,
    "cos": math.cos,
    "tan": math.tan,
    "asin": math.asin,
    "acos": math.acos,
    "atan": math.atan,
    "sinh": math.sinh,
    "cosh": math.cosh,
    "tanh": math.tanh,
    "floor": lambda x: float(math.floor(x)),
    "ceil": lambda x: float(math.ceil(x)),
    "trunc": lambda x: float(math.trunc(x)),
    "fract": lambda x: x - math.trunc(x),
    "exp": math.exp,
    "sqrt": math.sqrt,
    "cbrt": math.cbrt,
    "ln": math.log,
    "log": math.log,
    "log2": math.log2,
    "log10": math.log10,
}

CONSTANTS: dict[str, float] = {
    "pi": math.pi,
    "π": math.pi,
    "tau": math.tau,
    "τ": math.tau,
    "e": math.e,
}

_TOKEN = re.compile(
    r"\s*(?:"
    r"(?P<number>(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)"
    r"|(?P<name>[A-Za-z_πΠτΤ][A-Za-z0-9_πΠτΤ]*)"
    r"|(?P<op>[-+*/^()])"
    r")"
)


@dataclass(frozen=True)
class _Token:
    kind: str
    text: str
    pos: int


def _tokenize(source: str) -> list[_Token]:
    tokens = []
    pos = 0
    while pos < len(source):
        if source[pos:].strip() == "":
            break
        match = _TOKEN.match(source, pos)
        if match is None or match.lastgroup is None:
            offset = len(source[pos:]) - len(source[pos:].lstrip())
            raise ExpressionError(f"unexpected character `{source[pos + offset]}` at position {pos + offset}")
        tokens.append(_Token(match.lastgroup, match.group(match.lastgroup), match.start(match.lastgroup)))
        pos = match.end()
    tokens.append(_Token("end", "", len(source)))
    return tokens


# Expression tree
@dataclass(frozen=True)
class _Num:
    value: float


@dataclass(frozen=True)
class _Var:
    name: str


@dataclass(frozen=True)
class _Neg:
    operand: object


@dataclass(frozen=True)
class _Binary:
    op: str
    left: object
    right: object


@dataclass(frozen=True)
class _Call:
    name: str
    arg: object


class _Parser:
    def __init__(self, source: str):
        self.tokens = _tokenize(source)
        self.index = 0
        self.variables: list[str] = []

    def peek(self) -> _Token:
        return self.tokens[self.index]

    def advance(self) -> _Token:
        token = self.tokens[self.index]
        self.index += 1
        return token

    def expect(self, text: str) -> None:
        token = self.advance()
        if token.text != text:
            found = token.text or "end of input"
            raise ExpressionError(f"expected `{text}` at position {token.pos}, found `{found}`")

    def parse(self):
        if self.peek().kind == "end":
            raise ExpressionError("empty expression")
        tree = self.expr()
        token = self.peek()
        if token.kind != "end":
            raise ExpressionError(f"unexpected `{token.text}` at position {token.pos}")
        return tree

    def _binary(self, ops: str, operand):
        left = operand()
        while self.peek().kind == "op" and self.peek().text in ops:
            op = self.advance().text
            left = _Binary(op, left, operand())
        return left

    def expr(self):
        return self._binary("+-", self.term)

    def term(self):
        return self._binary("*/", self.power)

    def power(self):
        return self._binary("^", self.unary)

    def unary(self):
        # Sign applies to the operand before any `^`
        token = self.peek()
        if token.kind == "op" and token.text in "+-":
            self.advance()
            operand = self.unary()
            return _Neg(operand) if token.text == "-" else operand
        return self.atom()

    def atom(self):
        token = self.advance()
        if token.kind == "number":
            return _Num(float(token.text))
        if token.kind == "name":
            if self.peek().text == "(":
                if token.text not in FUNCTIONS:
                    raise ExpressionError(f"unknown function `{token.text}` at position {token.pos}")
                self.advance()
                arg = self.expr()
                self.expect(")")
                return _Call(token.text, arg)
            constant = CONSTANTS.get(token.text.lower())
            if constant is not None:
                return _Num(constant)
            if token.text in FUNCTIONS:
                raise ExpressionError(f"function `{token.text}` at position {token.pos} needs an argument")
            if token.text not in self.variables:
                self.variables.append(token.text)
            return _Var(token.text)
        if token.text == "(":
            inner = self.expr()
            self.expect(")")
            return inner
        found = token.text or "end of input"
        raise ExpressionError(f"unexpected `{found}` at position {token.pos}")


def _eval(node, args: Mapping[str, float]) -> float:
    if isinstance(node, _Num):
        return node.value
    if isinstance(node, _Var):
        try:
            return float(args[node.name])
        except KeyError:
            raise ExpressionError(f"missing argument `{node.name}`") from None
    if isinstance(node, _Neg):
        return -_eval(node.operand, args)
    if isinstance(node, _Call):
        return FUNCTIONS[node.name](_eval(node.arg, args))
    left = _eval(node.left, args)
    right = _eval(node.right, args)
    if node.op == "+":
        return left + right
    if node.op == "-":
        return left - right
    if node.op == "*":
        return left * right
    if node.op == "/":
        return left / right
    return math.pow(left, right)


@dataclass(frozen=True)
class CompiledExpression:
    source: str
    variables: tuple[str, ...]
    _tree: object

    def evaluate(self, args: Mapping[str, float] | None = None) -> float:
        try:
            result = _eval(self._tree, args or {})
        except ZeroDivisionError as e:
            raise ExpressionError(f"division by zero in `{self.source}`") from e
        except OverflowError as e:
            raise ExpressionError(f"numeric overflow in `{self.source}`") from e
        except ValueError as e:
            raise ExpressionError(f"math domain error in `{self.source}`: {e}") from e
        if not math.isfinite(result):
            raise ExpressionError(f"`{self.source}` evaluated to {result}")
        return result


@lru_cache(maxsize=256)
def compile_expression(source: str) -> CompiledExpression:
    parser = _Parser(source)
    tree = parser.parse()
    return CompiledExpression(source, tuple(parser.variables), tree)


def evaluate(source: str, args: Mapping[str, float] | None = None) -> float:
    return compile_expression(source).evaluate(args)


__all__ = ["FUNCTIONS", "CONSTANTS", "CompiledExpression", "compile_expression", "evaluate"]
