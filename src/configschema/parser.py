"""Condition Parser

Parses condition tokens into an expression tree. The grammar is the C
preprocessor's constant-expression grammar plus helper-macro calls:

    expression  := conditional
    conditional := logical_or ('?' expression ':' conditional)?
    logical_or  := logical_and ('||' logical_and)*
    ...           (bitwise, equality, comparison, shift, term, factor)
    unary       := ('!' | '-' | '+' | '~') unary | primary
    primary     := NUMBER | STRING | CHAR | '(' expression ')'
                 | 'defined' IDENTIFIER | 'defined' '(' IDENTIFIER ')'
                 | IDENTIFIER ('(' arguments? ')')?
"""

from typing import List, Union
from .lexer import Token, TokenType, tokenize
from .ast_nodes import (
    Expression, NumberLiteral, StringLiteral, CharLiteral, Identifier,
    BinaryExpression, BinaryOperator, UnaryExpression, UnaryOperator,
    ConditionalExpression, FunctionCall,
)


class ParseError(Exception):
    """Exception raised for parsing errors."""
    def __init__(self, message: str, token: Token):
        super().__init__(f"Parse error at column {token.position + 1}: {message}")
        self.token = token


def number_value(text: str) -> Union[int, float]:
    """Numeric value of a C literal, ignoring integer and float suffixes."""
    lower = text.lower()
    if lower.startswith('0x'):
        return int(lower.rstrip('ul'), 16)
    if lower.startswith('0b'):
        return int(lower.rstrip('ul'), 2)
    if '.' in lower or ('e' in lower and not lower.startswith('0x')):
        return float(lower.rstrip('fl'))
    digits = lower.rstrip('ul')
    if len(digits) > 1 and digits.startswith('0'):
        return int(digits, 8)
    return int(digits)


class Parser:
    """Condition Parser - converts tokens to an expression tree."""

    BINARY_LEVELS = [
        {TokenType.LOGICAL_OR: BinaryOperator.LOGICAL_OR},
        {TokenType.LOGICAL_AND: BinaryOperator.LOGICAL_AND},
        {TokenType.BITWISE_OR: BinaryOperator.BITWISE_OR},
        {TokenType.BITWISE_XOR: BinaryOperator.BITWISE_XOR},
        {TokenType.BITWISE_AND: BinaryOperator.BITWISE_AND},
        {
            TokenType.EQUALS: BinaryOperator.EQUALS,
            TokenType.NOT_EQUALS: BinaryOperator.NOT_EQUALS,
        },
        {
            TokenType.GREATER_THAN: BinaryOperator.GREATER_THAN,
            TokenType.GREATER_EQUAL: BinaryOperator.GREATER_EQUAL,
            TokenType.LESS_THAN: BinaryOperator.LESS_THAN,
            TokenType.LESS_EQUAL: BinaryOperator.LESS_EQUAL,
        },
        {
            TokenType.SHIFT_LEFT: BinaryOperator.SHIFT_LEFT,
            TokenType.SHIFT_RIGHT: BinaryOperator.SHIFT_RIGHT,
        },
        {
            TokenType.PLUS: BinaryOperator.ADD,
            TokenType.MINUS: BinaryOperator.SUBTRACT,
        },
        {
            TokenType.MULTIPLY: BinaryOperator.MULTIPLY,
            TokenType.DIVIDE: BinaryOperator.DIVIDE,
            TokenType.MODULO: BinaryOperator.MODULO,
        },
    ]

    UNARY_OPERATORS = {
        TokenType.LOGICAL_NOT: UnaryOperator.LOGICAL_NOT,
        TokenType.MINUS: UnaryOperator.NEGATE,
        TokenType.PLUS: UnaryOperator.PLUS,
        TokenType.BITWISE_NOT: UnaryOperator.BITWISE_NOT,
    }

    def __init__(self, tokens: List[Token]):
        self.tokens = tokens
        self.current = 0

    def error(self, message: str) -> None:
        """Raise a parse error at the current token."""
        raise ParseError(message, self.peek())

    def peek(self, offset: int = 0) -> Token:
        """Look ahead at token without consuming it."""
        pos = self.current + offset
        if pos >= len(self.tokens):
            return self.tokens[-1]  # EOF
        return self.tokens[pos]

    def advance(self) -> Token:
        """Consume and return the current token."""
        if not self.is_at_end():
            self.current += 1
        return self.previous()

    def is_at_end(self) -> bool:
        return self.peek().type == TokenType.EOF

    def previous(self) -> Token:
        return self.tokens[self.current - 1]

    def check(self, token_type: TokenType) -> bool:
        if self.is_at_end():
            return False
        return self.peek().type == token_type

    def match(self, *types: TokenType) -> bool:
        """Check if current token matches any of the given types."""
        for token_type in types:
            if self.check(token_type):
                self.advance()
                return True
        return False

    def consume(self, token_type: TokenType, message: str) -> Token:
        """Consume token of given type or raise error."""
        if self.check(token_type):
            return self.advance()
        self.error(message)

    def parse(self) -> Expression:
        """Parse one complete condition."""
        if self.is_at_end():
            self.error("Empty condition")
        expr = self.expression()
        if not self.is_at_end():
            self.error(f"Unexpected token '{self.peek().value}'")
        return expr

    def expression(self) -> Expression:
        return self.conditional()

    def conditional(self) -> Expression:
        """Parse ternary conditional expression."""
        expr = self.binary(0)
        if self.match(TokenType.QUESTION):
            then_branch = self.expression()
            self.consume(TokenType.COLON, "Expected ':' in conditional expression")
            else_branch = self.conditional()
            return ConditionalExpression(expr, then_branch, else_branch)
        return expr

    def binary(self, level: int) -> Expression:
        """Parse a left-associative binary level of the precedence ladder."""
        if level >= len(self.BINARY_LEVELS):
            return self.unary()

        operators = self.BINARY_LEVELS[level]
        expr = self.binary(level + 1)

        while self.match(*operators.keys()):
            operator = operators[self.previous().type]
            right = self.binary(level + 1)
            expr = BinaryExpression(expr, operator, right)

        return expr

    def unary(self) -> Expression:
        if self.match(*self.UNARY_OPERATORS.keys()):
            operator = self.UNARY_OPERATORS[self.previous().type]
            return UnaryExpression(operator, self.unary())
        return self.primary()

    def arguments(self) -> List[Expression]:
        """Parse a call's argument list after '('. Empty arguments are allowed."""
        arguments = []
        if not self.check(TokenType.RIGHT_PAREN):
            arguments.append(self.expression())
            while self.match(TokenType.COMMA):
                arguments.append(self.expression())
        self.consume(TokenType.RIGHT_PAREN, "Expected ')' after arguments")
        return arguments

    def primary(self) -> Expression:
        """Parse primary expression."""
        if self.match(TokenType.NUMBER):
            text = self.previous().value
            return NumberLiteral(number_value(text), text)

        if self.match(TokenType.STRING):
            return StringLiteral(self.previous().value)

        if self.match(TokenType.CHAR):
            return CharLiteral(self.previous().value)

        if self.match(TokenType.IDENTIFIER):
            name = self.previous().value

            # `defined NAME` without parentheses
            if name == 'defined' and self.check(TokenType.IDENTIFIER):
                return FunctionCall(name, [Identifier(self.advance().value)])

            if self.match(TokenType.LEFT_PAREN):
                return FunctionCall(name, self.arguments())

            return Identifier(name)

        if self.match(TokenType.LEFT_PAREN):
            expr = self.expression()
            self.consume(TokenType.RIGHT_PAREN, "Expected ')' after expression")
            return expr

        self.error("Expected expression")


def parse(tokens: List[Token]) -> Expression:
    """Convenience function to parse tokens into an expression tree."""
    parser = Parser(tokens)
    return parser.parse()


def parse_condition(text: str) -> Expression:
    """Tokenize and parse a condition string in one step."""
    return parse(tokenize(text))
