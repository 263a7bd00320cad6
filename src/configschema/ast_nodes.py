"""Condition Expression AST Node Definitions

Defines the AST node classes for representing parsed preprocessor
conditions (the text of #if / #elif lines and combined requirements).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List
from enum import Enum


class ASTNode(ABC):
    """Base class for all AST nodes."""

    @abstractmethod
    def accept(self, visitor):
        """Accept a visitor for the visitor pattern."""
        pass


class Expression(ASTNode):
    """Base class for all expressions."""
    pass


@dataclass
class NumberLiteral(Expression):
    """Integer or float literal. `text` keeps the source spelling."""
    value: float
    text: str

    def accept(self, visitor):
        return visitor.visit_number_literal(self)


@dataclass
class StringLiteral(Expression):
    """Double-quoted string literal (quotes removed)."""
    value: str

    def accept(self, visitor):
        return visitor.visit_string_literal(self)


@dataclass
class CharLiteral(Expression):
    """Character literal expression."""
    value: str

    def accept(self, visitor):
        return visitor.visit_char_literal(self)


@dataclass
class Identifier(Expression):
    """Option name or helper macro name."""
    name: str

    def accept(self, visitor):
        return visitor.visit_identifier(self)


class BinaryOperator(Enum):
    ADD = "+"
    SUBTRACT = "-"
    MULTIPLY = "*"
    DIVIDE = "/"
    MODULO = "%"
    EQUALS = "=="
    NOT_EQUALS = "!="
    LESS_THAN = "<"
    GREATER_THAN = ">"
    LESS_EQUAL = "<="
    GREATER_EQUAL = ">="
    LOGICAL_AND = "&&"
    LOGICAL_OR = "||"
    BITWISE_AND = "&"
    BITWISE_OR = "|"
    BITWISE_XOR = "^"
    SHIFT_LEFT = "<<"
    SHIFT_RIGHT = ">>"


# Binding strength used when printing an expression back to source text
PRECEDENCE = {
    BinaryOperator.LOGICAL_OR: 1,
    BinaryOperator.LOGICAL_AND: 2,
    BinaryOperator.BITWISE_OR: 3,
    BinaryOperator.BITWISE_XOR: 4,
    BinaryOperator.BITWISE_AND: 5,
    BinaryOperator.EQUALS: 6,
    BinaryOperator.NOT_EQUALS: 6,
    BinaryOperator.LESS_THAN: 7,
    BinaryOperator.GREATER_THAN: 7,
    BinaryOperator.LESS_EQUAL: 7,
    BinaryOperator.GREATER_EQUAL: 7,
    BinaryOperator.SHIFT_LEFT: 8,
    BinaryOperator.SHIFT_RIGHT: 8,
    BinaryOperator.ADD: 9,
    BinaryOperator.SUBTRACT: 9,
    BinaryOperator.MULTIPLY: 10,
    BinaryOperator.DIVIDE: 10,
    BinaryOperator.MODULO: 10,
}
CONDITIONAL_PRECEDENCE = 0
UNARY_PRECEDENCE = 11
PRIMARY_PRECEDENCE = 12


@dataclass
class BinaryExpression(Expression):
    """Binary operation expression."""
    left: Expression
    operator: BinaryOperator
    right: Expression

    def accept(self, visitor):
        return visitor.visit_binary_expression(self)


class UnaryOperator(Enum):
    NEGATE = "-"
    PLUS = "+"
    LOGICAL_NOT = "!"
    BITWISE_NOT = "~"


@dataclass
class UnaryExpression(Expression):
    """Unary operation expression."""
    operator: UnaryOperator
    operand: Expression

    def accept(self, visitor):
        return visitor.visit_unary_expression(self)


@dataclass
class ConditionalExpression(Expression):
    """Ternary `cond ? a : b` expression."""
    condition: Expression
    then_branch: Expression
    else_branch: Expression

    def accept(self, visitor):
        return visitor.visit_conditional_expression(self)


@dataclass
class FunctionCall(Expression):
    """Call of a helper macro such as ENABLED(...) or HAS_AXIS(...).

    `defined X` without parentheses is also represented as a call.
    """
    name: str
    arguments: List[Expression]

    def accept(self, visitor):
        return visitor.visit_function_call(self)


def precedence_of(expr: Expression) -> int:
    """Binding strength of the top-level operator of *expr*."""
    if isinstance(expr, BinaryExpression):
        return PRECEDENCE[expr.operator]
    if isinstance(expr, ConditionalExpression):
        return CONDITIONAL_PRECEDENCE
    if isinstance(expr, UnaryExpression):
        return UNARY_PRECEDENCE
    return PRIMARY_PRECEDENCE


class SourcePrinter:
    """Renders an expression tree back to compact preprocessor source.

    Parentheses are emitted only where operator binding requires them, so
    printing a parsed condition strips every redundant group.
    """

    def print(self, expr: Expression) -> str:
        return expr.accept(self)

    def _wrap(self, expr: Expression, minimum: int) -> str:
        text = expr.accept(self)
        if precedence_of(expr) < minimum:
            return f"({text})"
        return text

    def visit_number_literal(self, node: NumberLiteral) -> str:
        return node.text

    def visit_string_literal(self, node: StringLiteral) -> str:
        escaped = node.value.replace('\\', '\\\\').replace('"', '\\"')
        return f'"{escaped}"'

    def visit_char_literal(self, node: CharLiteral) -> str:
        return f"'{node.value}'"

    def visit_identifier(self, node: Identifier) -> str:
        return node.name

    def visit_function_call(self, node: FunctionCall) -> str:
        args = ', '.join(arg.accept(self) for arg in node.arguments)
        return f"{node.name}({args})"

    def visit_unary_expression(self, node: UnaryExpression) -> str:
        return node.operator.value + self._wrap(node.operand, UNARY_PRECEDENCE)

    def visit_binary_expression(self, node: BinaryExpression) -> str:
        level = PRECEDENCE[node.operator]
        # Left-associative: the right operand needs a strictly tighter binding
        # unless the operator is associative (&&, ||).
        right_min = level if node.operator in (
            BinaryOperator.LOGICAL_AND, BinaryOperator.LOGICAL_OR) else level + 1
        left = self._wrap(node.left, level)
        right = self._wrap(node.right, right_min)
        return f"{left} {node.operator.value} {right}"

    def visit_conditional_expression(self, node: ConditionalExpression) -> str:
        cond = self._wrap(node.condition, CONDITIONAL_PRECEDENCE + 1)
        then = self._wrap(node.then_branch, CONDITIONAL_PRECEDENCE + 1)
        other = self._wrap(node.else_branch, CONDITIONAL_PRECEDENCE)
        return f"{cond} ? {then} : {other}"


def to_source(expr: Expression) -> str:
    """Convenience function to render an expression as source text."""
    return SourcePrinter().print(expr)
