"""Condition Lexical Analyzer

Tokenizes a preprocessor condition (the text after #if / #elif, or a
combined requirement string) into a stream of tokens for parsing.
"""

from enum import Enum, auto
from dataclasses import dataclass
from typing import List, Optional
import re


class TokenType(Enum):
    # Literals
    NUMBER = auto()
    STRING = auto()
    CHAR = auto()
    IDENTIFIER = auto()

    # Operators
    PLUS = auto()
    MINUS = auto()
    MULTIPLY = auto()
    DIVIDE = auto()
    MODULO = auto()
    EQUALS = auto()
    NOT_EQUALS = auto()
    LESS_THAN = auto()
    GREATER_THAN = auto()
    LESS_EQUAL = auto()
    GREATER_EQUAL = auto()
    LOGICAL_AND = auto()
    LOGICAL_OR = auto()
    LOGICAL_NOT = auto()
    BITWISE_AND = auto()
    BITWISE_OR = auto()
    BITWISE_XOR = auto()
    BITWISE_NOT = auto()
    SHIFT_LEFT = auto()
    SHIFT_RIGHT = auto()
    QUESTION = auto()

    # Delimiters
    COMMA = auto()
    COLON = auto()
    LEFT_PAREN = auto()
    RIGHT_PAREN = auto()

    # Special
    EOF = auto()


@dataclass
class Token:
    type: TokenType
    value: str
    position: int

    def __str__(self) -> str:
        return f"Token({self.type.name}, '{self.value}', {self.position})"


class LexerError(Exception):
    """Exception raised for lexical analysis errors."""
    def __init__(self, message: str, position: int):
        super().__init__(f"Lexer error at column {position + 1}: {message}")
        self.position = position


# Integer with optional hex/binary prefix and C suffixes, or a float literal
_NUMBER_RE = re.compile(
    r'0[xX][0-9A-Fa-f]+[uUlL]*'
    r'|0[bB][01]+[uUlL]*'
    r'|(\d+\.\d*|\.\d+)([eE][-+]?\d+)?[fFlL]?'
    r'|\d+[eE][-+]?\d+[fFlL]?'
    r'|\d+[uUlL]*'
)


class Lexer:
    """Condition Lexical Analyzer"""

    OPERATORS = {
        '+': TokenType.PLUS,
        '-': TokenType.MINUS,
        '*': TokenType.MULTIPLY,
        '/': TokenType.DIVIDE,
        '%': TokenType.MODULO,
        '==': TokenType.EQUALS,
        '!=': TokenType.NOT_EQUALS,
        '<': TokenType.LESS_THAN,
        '>': TokenType.GREATER_THAN,
        '<=': TokenType.LESS_EQUAL,
        '>=': TokenType.GREATER_EQUAL,
        '&&': TokenType.LOGICAL_AND,
        '||': TokenType.LOGICAL_OR,
        '!': TokenType.LOGICAL_NOT,
        '&': TokenType.BITWISE_AND,
        '|': TokenType.BITWISE_OR,
        '^': TokenType.BITWISE_XOR,
        '~': TokenType.BITWISE_NOT,
        '<<': TokenType.SHIFT_LEFT,
        '>>': TokenType.SHIFT_RIGHT,
        '?': TokenType.QUESTION,
    }

    DELIMITERS = {
        ',': TokenType.COMMA,
        ':': TokenType.COLON,
        '(': TokenType.LEFT_PAREN,
        ')': TokenType.RIGHT_PAREN,
    }

    def __init__(self, text: str):
        self.text = text
        self.pos = 0
        self.tokens: List[Token] = []

    def error(self, message: str) -> None:
        """Raise a lexer error at the current position."""
        raise LexerError(message, self.pos)

    def peek(self, offset: int = 0) -> Optional[str]:
        """Look ahead at character without consuming it."""
        pos = self.pos + offset
        if pos >= len(self.text):
            return None
        return self.text[pos]

    def advance(self) -> Optional[str]:
        """Consume and return the current character."""
        if self.pos >= len(self.text):
            return None
        char = self.text[self.pos]
        self.pos += 1
        return char

    def skip_whitespace(self) -> None:
        while self.peek() and self.peek() in ' \t\r\n':
            self.advance()

    def read_number(self) -> Token:
        """Read an integer or float literal, C suffixes included."""
        start = self.pos
        match = _NUMBER_RE.match(self.text, self.pos)
        if not match:
            self.error("Invalid number")
        self.pos = match.end()
        if self.peek() and (self.peek().isalnum() or self.peek() == '_'):
            self.error(f"Invalid number suffix '{self.peek()}'")
        return Token(TokenType.NUMBER, match.group(0), start)

    def read_identifier(self) -> Token:
        start = self.pos
        value = ""
        while self.peek() and (self.peek().isalnum() or self.peek() == '_'):
            value += self.advance()
        return Token(TokenType.IDENTIFIER, value, start)

    def read_quoted(self, quote: str, token_type: TokenType) -> Token:
        """Read a string or character literal, keeping escapes resolved."""
        start = self.pos
        self.advance()  # consume opening quote
        value = ""
        while True:
            char = self.advance()
            if char is None:
                self.error("Unterminated literal")
            if char == quote:
                break
            if char == '\\':
                escaped = self.advance()
                if escaped is None:
                    self.error("Unterminated escape sequence")
                value += {'n': '\n', 't': '\t', '0': '\0'}.get(escaped, escaped)
            else:
                value += char
        return Token(token_type, value, start)

    def tokenize(self) -> List[Token]:
        """Tokenize the entire input text."""
        while self.pos < len(self.text):
            self.skip_whitespace()

            if self.pos >= len(self.text):
                break

            char = self.peek()

            # Numbers
            if char.isdigit() or (char == '.' and (self.peek(1) or '').isdigit()):
                self.tokens.append(self.read_number())
                continue

            # Identifiers
            if char.isalpha() or char == '_':
                self.tokens.append(self.read_identifier())
                continue

            if char == '"':
                self.tokens.append(self.read_quoted('"', TokenType.STRING))
                continue

            if char == '\'':
                self.tokens.append(self.read_quoted('\'', TokenType.CHAR))
                continue

            # Multi-character operators
            two_char = char + (self.peek(1) or '')
            if two_char in self.OPERATORS:
                self.tokens.append(Token(self.OPERATORS[two_char], two_char, self.pos))
                self.pos += 2
                continue

            # Single-character operators and delimiters
            if char in self.OPERATORS:
                self.tokens.append(Token(self.OPERATORS[char], char, self.pos))
                self.advance()
                continue

            if char in self.DELIMITERS:
                self.tokens.append(Token(self.DELIMITERS[char], char, self.pos))
                self.advance()
                continue

            # Unknown character
            self.error(f"Unexpected character: '{char}'")

        self.tokens.append(Token(TokenType.EOF, "", self.pos))
        return self.tokens


def tokenize(text: str) -> List[Token]:
    """Convenience function to tokenize a condition."""
    lexer = Lexer(text)
    return lexer.tokenize()
