"""Condition Stack and Combiner

Tracks the nesting of #if / #ifdef / #ifndef / #elif / #else / #endif
blocks and produces the combined requirement string for the options
defined inside them.

The stack holds one list of condition fragments per open #if block:

    #if A          -> [[A]]
    #elif B        -> [[!A, B]]
    #else          -> [[!A, !B]]
    #endif         -> []

The requirement at any point is the conjunction of every fragment on the
stack. Before it is stored, the conjunction is parsed and rewritten into a
compact canonical form (ENABLED/DISABLED/ANY/ALL/NONE folding). Rewrites
happen on the expression tree so they can never change what the condition
means; a condition that cannot be parsed is kept verbatim.
"""

import logging
import re
from typing import List, Optional

from .ast_nodes import (
    Expression, Identifier, FunctionCall, BinaryExpression, BinaryOperator,
    UnaryExpression, UnaryOperator, to_source,
)
from .lexer import LexerError
from .parser import ParseError, parse_condition

logger = logging.getLogger(__name__)


_IDENT_RE = re.compile(r'^\w+$')
_FLAT_CALL_RE = re.compile(r'^\w+\s*\([^()]*\)$')
_RELATION_RE = re.compile(r'^\w+\s*(==|!=|<=|>=|<|>)\s*\w+$')


def _is_single_group(text: str) -> bool:
    """True if *text* is one parenthesized group whose outer parens pair up."""
    if not (text.startswith('(') and text.endswith(')')):
        return False
    depth = 0
    for i, char in enumerate(text):
        if char == '(':
            depth += 1
        elif char == ')':
            depth -= 1
            if depth == 0 and i != len(text) - 1:
                return False
    return depth == 0


def _is_call(text: str) -> bool:
    """True if *text* is NAME( ... ) with the outer parens paired."""
    match = re.match(r'^\w+\s*(?=\()', text)
    return bool(match) and _is_single_group(text[match.end():])


def _is_tight(text: str) -> bool:
    """Identifier, call or paren group: safe to prefix with '!'."""
    return bool(_IDENT_RE.match(text)) or _is_call(text) or _is_single_group(text)


def atomize(cond: str) -> str:
    """Parenthesize a condition fragment unless it is already atomic."""
    cond = cond.strip()
    if (cond == ''
            or _IDENT_RE.match(cond)
            or _FLAT_CALL_RE.match(cond)
            or _RELATION_RE.match(cond)
            or _is_single_group(cond)):
        return cond
    if cond.startswith('!') and _is_tight(cond[1:].strip()):
        return cond
    return f"({cond})"


def negate(cond: str) -> str:
    """Logical negation of an atomized fragment, kept as short as possible."""
    cond = cond.strip()
    if cond.startswith('!') and _is_tight(cond[1:].strip()):
        return cond[1:].strip()
    if _is_tight(cond):
        return '!' + cond
    return f"!({cond})"


class ConditionStack:
    """Condition arrays mirroring the current #if nesting."""

    def __init__(self):
        self.stack: List[List[str]] = []

    @property
    def depth(self) -> int:
        return len(self.stack)

    def push_if(self, cond: str) -> None:
        self.stack.append([atomize(cond)])

    def push_ifdef(self, name: str) -> None:
        self.stack.append([f"defined({name.strip()})"])

    def push_ifndef(self, name: str) -> None:
        self.stack.append([f"!defined({name.strip()})"])

    def else_(self) -> bool:
        """Negate the last fragment of the innermost block.

        Returns False (and changes nothing) when no block is open.
        """
        if not self.stack:
            return False
        top = self.stack[-1]
        top[-1] = negate(top[-1])
        return True

    def elif_(self, cond: str) -> bool:
        if not self.stack:
            return False
        top = self.stack[-1]
        top[-1] = negate(top[-1])
        top.append(atomize(cond))
        return True

    def endif(self) -> bool:
        if not self.stack:
            return False
        self.stack.pop()
        return True

    def requires(self) -> Optional[str]:
        """Combined requirement for the current point, or None outside any #if."""
        if not self.stack:
            return None
        return combine_conditions(self.stack)


# ---------------------------------------------------------------------------
# Combination rewrites
# ---------------------------------------------------------------------------

ALL_NAMES = ('ENABLED', 'ALL', 'BOTH')
NONE_NAMES = ('DISABLED', 'NONE')
ANY_NAMES = ('ANY', 'EITHER')
BOOLEAN_CALLS = ALL_NAMES + NONE_NAMES + ANY_NAMES + ('defined', 'MANY')


def _call(node: Expression, names, single: bool = False) -> bool:
    """True for a call to one of *names* whose arguments are all plain names."""
    if not isinstance(node, FunctionCall) or node.name not in names:
        return False
    if not node.arguments:
        return False
    if single and len(node.arguments) != 1:
        return False
    return all(isinstance(arg, Identifier) for arg in node.arguments)


def _not_all(node: Expression) -> bool:
    return (isinstance(node, UnaryExpression)
            and node.operator is UnaryOperator.LOGICAL_NOT
            and _call(node.operand, ('ALL', 'BOTH')))


def _is_boolean(node: Expression) -> bool:
    if isinstance(node, FunctionCall):
        return node.name in BOOLEAN_CALLS
    if isinstance(node, UnaryExpression):
        return node.operator is UnaryOperator.LOGICAL_NOT
    if isinstance(node, BinaryExpression):
        return node.operator in (
            BinaryOperator.LOGICAL_AND, BinaryOperator.LOGICAL_OR,
            BinaryOperator.EQUALS, BinaryOperator.NOT_EQUALS,
            BinaryOperator.LESS_THAN, BinaryOperator.LESS_EQUAL,
            BinaryOperator.GREATER_THAN, BinaryOperator.GREATER_EQUAL,
        )
    return False


def _flatten(node: Expression, operator: BinaryOperator) -> List[Expression]:
    if isinstance(node, BinaryExpression) and node.operator is operator:
        return _flatten(node.left, operator) + _flatten(node.right, operator)
    return [node]


def _rebuild(items: List[Expression], operator: BinaryOperator) -> Expression:
    expr = items[0]
    for item in items[1:]:
        expr = BinaryExpression(expr, operator, item)
    return expr


def _fold_and(left: Expression, right: Expression) -> Optional[Expression]:
    if _call(left, ALL_NAMES) and _call(right, ALL_NAMES):
        return FunctionCall('ALL', left.arguments + right.arguments)
    if _call(left, NONE_NAMES) and _call(right, NONE_NAMES):
        return FunctionCall('NONE', left.arguments + right.arguments)
    return None


def _fold_or(left: Expression, right: Expression) -> Optional[Expression]:
    def any_like(node):
        return _call(node, ('ENABLED',), single=True) or _call(node, ANY_NAMES)

    def not_all_args(node):
        if _call(node, ('DISABLED',), single=True):
            return node.arguments
        if _not_all(node):
            return node.operand.arguments
        return None

    if any_like(left) and any_like(right):
        return FunctionCall('ANY', left.arguments + right.arguments)

    left_args, right_args = not_all_args(left), not_all_args(right)
    if left_args is not None and right_args is not None:
        return UnaryExpression(UnaryOperator.LOGICAL_NOT,
                               FunctionCall('ALL', left_args + right_args))
    return None


def _fold_chain(items: List[Expression], fold) -> List[Expression]:
    """Fold adjacent pairs left to right."""
    result: List[Expression] = []
    for item in items:
        if result:
            folded = fold(result[-1], item)
            if folded is not None:
                result[-1] = folded
                continue
        result.append(item)
    return result


def simplify(node: Expression) -> Expression:
    """Apply one bottom-up pass of the combination rewrites."""
    if isinstance(node, FunctionCall):
        return FunctionCall(node.name, [simplify(arg) for arg in node.arguments])

    if isinstance(node, UnaryExpression):
        operand = simplify(node.operand)
        if node.operator is UnaryOperator.LOGICAL_NOT:
            if _call(operand, ('ENABLED',), single=True):
                return FunctionCall('DISABLED', operand.arguments)
            if _call(operand, ('DISABLED',), single=True):
                return FunctionCall('ENABLED', operand.arguments)
            if _call(operand, ANY_NAMES):
                return FunctionCall('NONE', operand.arguments)
            if _call(operand, ('NONE',)):
                return FunctionCall('ANY', operand.arguments)
            if (isinstance(operand, UnaryExpression)
                    and operand.operator is UnaryOperator.LOGICAL_NOT
                    and _is_boolean(operand.operand)):
                return operand.operand
        return UnaryExpression(node.operator, operand)

    if isinstance(node, BinaryExpression):
        if node.operator in (BinaryOperator.LOGICAL_AND, BinaryOperator.LOGICAL_OR):
            items = [simplify(item) for item in _flatten(node, node.operator)]
            fold = _fold_and if node.operator is BinaryOperator.LOGICAL_AND else _fold_or
            return _rebuild(_fold_chain(items, fold), node.operator)
        return BinaryExpression(simplify(node.left), node.operator, simplify(node.right))

    return node


def combine_conditions(stack: List[List[str]]) -> str:
    """Conjoin every fragment on the stack and rewrite to a compact form."""
    fragments = [frag for group in stack for frag in group if frag]
    cond = ' && '.join(fragments)
    if not cond:
        return cond

    try:
        expr = parse_condition(cond)
    except (LexerError, ParseError) as e:
        logger.debug(f"Keeping unparsed condition '{cond}': {e}")
        return cond

    text = to_source(expr)
    for _ in range(16):
        expr = simplify(expr)
        new_text = to_source(expr)
        if new_text == text:
            break
        text = new_text
    return text
