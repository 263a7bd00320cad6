"""Helper Macro Expansion

Textual expansion applied to a requirement string before it is parsed
for evaluation. Only a fixed set of helper macros is understood:

    MAP(fn, a, b, ...)         fn(a) fn(b) ...
    REPEAT(N, OP)              OP(0) OP(1) ... OP(N-1)
    REPEAT_1(N, OP)            OP(1) ... OP(N)
    REPEAT_S(S, N, OP)         OP(S) ... OP(N-1)
    REPEAT2(N, OP, V...)       OP(0, V...) ... OP(N-1, V...)
    REPEAT2_S(S, N, OP, V...)  OP(S, V...) ... OP(N-1, V...)

`fn` and `OP` name function-like helper defines such as

    #define _OR_HAS_DA(A) || ENABLED(A##_DRIVER_TYPE)

whose parameter list and body are looked up in the schema. The body
carries its own joining operator, so expansions are simply concatenated.

Key design decisions:
- Expansion is a pure string to string stage; nothing here evaluates.
- Counts may be literals or the names of int-valued options.
- Token pasting supports `##P##`, `##P` and `P##` around a parameter.
"""

import re
from typing import Callable, List, Optional, Tuple

from .config import SchemaConfig, DEFAULT_CONFIG


class MacroExpansionError(Exception):
    """Raised when a helper macro cannot be expanded."""
    pass


# Returns (params, body) for a function-like helper, or None
TemplateLookup = Callable[[str], Optional[Tuple[str, str]]]
# Returns the value of a named option, or None
ValueLookup = Callable[[str], Optional[object]]

_EXPANDER_RE = re.compile(r'\b(MAP|REPEAT2_S|REPEAT2|REPEAT_S|REPEAT_1|REPEAT)\s*\(')
_FUSED_DRIVER_RE = re.compile(r'\bAXIS_DRIVER_TYPE_(\w+)\s*\(\s*')
_INT_RE = re.compile(r'^[-+]?\d+$')


def find_closing(text: str, open_pos: int) -> int:
    """Index of the ')' matching the '(' at *open_pos*."""
    depth = 0
    for i in range(open_pos, len(text)):
        if text[i] == '(':
            depth += 1
        elif text[i] == ')':
            depth -= 1
            if depth == 0:
                return i
    raise MacroExpansionError(f"Unbalanced parentheses in '{text}'")


def split_args(text: str) -> List[str]:
    """Split a call's argument text on top-level commas."""
    if not text.strip():
        return []
    args, depth, current = [], 0, ''
    for char in text:
        if char == '(':
            depth += 1
        elif char == ')':
            depth -= 1
        if char == ',' and depth == 0:
            args.append(current.strip())
            current = ''
        else:
            current += char
    args.append(current.strip())
    return args


def substitute(params: str, body: str, args: List[str]) -> str:
    """Substitute *args* for the comma-separated *params* in *body*."""
    names = [p.strip() for p in params.split(',') if p.strip()]
    if len(names) != len(args):
        raise MacroExpansionError(
            f"Expected {len(names)} arguments for ({params}), got {len(args)}")
    if not names:
        return body

    values = dict(zip(names, args))
    pattern = re.compile(
        r'(?:##\s*)?\b(' + '|'.join(re.escape(n) for n in names) + r')\b(?:\s*##)?')
    return pattern.sub(lambda m: values[m.group(1)], body)


class MacroExpander:
    """Expands MAP / REPEAT helper calls using templates from the schema."""

    def __init__(self, templates: TemplateLookup, values: ValueLookup,
                 config: SchemaConfig = DEFAULT_CONFIG):
        self.templates = templates
        self.values = values
        self.config = config

    def count(self, text: str) -> int:
        """Resolve a repeat count given as a literal or an option name."""
        text = text.strip()
        if _INT_RE.match(text):
            return int(text)
        value = self.values(text)
        if isinstance(value, bool):
            raise MacroExpansionError(f"Count '{text}' is not an integer")
        if isinstance(value, int):
            return value
        if isinstance(value, str) and _INT_RE.match(value.strip()):
            return int(value)
        raise MacroExpansionError(f"Cannot resolve count '{text}'")

    def apply(self, fn: str, args: List[str]) -> str:
        template = self.templates(fn.strip())
        if template is None:
            raise MacroExpansionError(f"No helper macro named '{fn.strip()}'")
        params, body = template
        return substitute(params, body, args)

    def expand_call(self, name: str, args: List[str]) -> str:
        """Expand one helper call into concatenated template bodies."""
        def need(n):
            if len(args) < n:
                raise MacroExpansionError(f"{name} needs at least {n} arguments")

        parts: List[str] = []
        if name == 'MAP':
            need(1)
            parts = [self.apply(args[0], [arg]) for arg in args[1:]]
        elif name == 'REPEAT':
            need(2)
            parts = [self.apply(args[1], [str(i)]) for i in range(self.count(args[0]))]
        elif name == 'REPEAT_1':
            need(2)
            parts = [self.apply(args[1], [str(i)])
                     for i in range(1, self.count(args[0]) + 1)]
        elif name == 'REPEAT_S':
            need(3)
            parts = [self.apply(args[2], [str(i)])
                     for i in range(self.count(args[0]), self.count(args[1]))]
        elif name == 'REPEAT2':
            need(2)
            parts = [self.apply(args[1], [str(i)] + args[2:])
                     for i in range(self.count(args[0]))]
        elif name == 'REPEAT2_S':
            need(3)
            parts = [self.apply(args[2], [str(i)] + args[3:])
                     for i in range(self.count(args[0]), self.count(args[1]))]
        return ' '.join(part.strip() for part in parts)

    def expand_once(self, text: str) -> Tuple[str, bool]:
        """Expand every helper call found in one left-to-right scan."""
        out, pos, changed = '', 0, False
        while True:
            match = _EXPANDER_RE.search(text, pos)
            if not match:
                break
            open_pos = match.end() - 1
            close_pos = find_closing(text, open_pos)
            args = split_args(text[open_pos + 1:close_pos])
            out += text[pos:match.start()] + self.expand_call(match.group(1), args)
            pos = close_pos + 1
            changed = True
        return out + text[pos:], changed

    def expand(self, text: str) -> str:
        for _ in range(self.config.max_expansion_passes):
            text, changed = self.expand_once(text)
            if not changed:
                return text
        if _EXPANDER_RE.search(text):
            raise MacroExpansionError(f"Expansion did not settle: '{text}'")
        return text


def rewrite_fused_names(text: str) -> str:
    """AXIS_DRIVER_TYPE_X(T) -> AXIS_DRIVER_TYPE(X, T)"""
    return _FUSED_DRIVER_RE.sub(r'AXIS_DRIVER_TYPE(\1, ', text)


# A group opening right after a name is a call's argument list
_NOT_CALL = r'(?<![\w)])(?<![\w)]\s)'

_REDUNDANT_PARENS = [
    # (NAME) or (123)
    re.compile(_NOT_CALL + r'\(\s*([\w.]+)\s*\)'),
    # (NAME(args)) with flat args
    re.compile(_NOT_CALL + r'\(\s*(!?\w+\s*\([^()]*\))\s*\)'),
    # ((anything flat))
    re.compile(_NOT_CALL + r'\(\s*(\([^()]*\))\s*\)'),
]


def strip_redundant_parens(text: str) -> str:
    """Drop parentheses that wrap a single name, number or call."""
    while True:
        before = text
        for pattern in _REDUNDANT_PARENS:
            text = pattern.sub(r'\1', text)
        if text == before:
            return text


def expand_condition(cond: str, templates: TemplateLookup, values: ValueLookup,
                     config: SchemaConfig = DEFAULT_CONFIG) -> str:
    """Run the full textual stage: helpers, fused names, parentheses."""
    text = MacroExpander(templates, values, config).expand(cond)
    text = rewrite_fused_names(text)
    return strip_redundant_parens(text)
