"""Value Typer

Classifies the literal value of a #define into a semantic type using
ordered pattern rules. The first rule that matches wins, and every value
gets exactly one type (possibly the empty, untyped one).

    ""                 -> switch
    NAME_PIN           -> pin
    true / false       -> bool
    *_ENABLE_ON        -> state   (canonicalized to HIGH / LOW)
    *_HOME_DIR         -> dir     (with a fixed Near / No Homing / Far option set)
    123                -> int
    1.5f               -> float
    FOO(bar)           -> macro
    "text"             -> string
    'c'                -> char
    HIGH / LOW         -> state
    SOME_ENUM_VALUE    -> enum
    { 0x01, ... x6 }   -> mac-address
    { 1, 2, 3 }        -> array-int
    { 1.0, 2.0 }       -> array-float
    { ... }            -> array-generic
"""

import json
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union


OptionValue = Union[bool, int, float, str]


class ValueType(Enum):
    SWITCH = "switch"
    BOOL = "bool"
    INT = "int"
    FLOAT = "float"
    PIN = "pin"
    STATE = "state"
    DIR = "dir"
    STRING = "string"
    CHAR = "char"
    ENUM = "enum"
    MACRO = "macro"
    INT_ARRAY = "array-int"
    FLOAT_ARRAY = "array-float"
    ARRAY = "array-generic"
    MAC = "mac-address"
    UNTYPED = ""


HOME_DIR_OPTIONS = json.dumps({"-1": "Near", "0": "No Homing", "1": "Far"})

_PIN_NAME_RE = re.compile(r'^[A-Z0-9_]+_PIN$')
_BOOL_RE = re.compile(r'^(true|false)$', re.IGNORECASE)
_INT_RE = re.compile(r'^[-+]?\s*\d+$')
_FLOAT_RE = re.compile(r'^[-+]?\s*((\d+\.\d*|\d*\.\d+)([eE][-+]?\d+)?|\d+[eE][-+]?\d+)[fF]?$')
_MACRO_RE = re.compile(r'^[A-Za-z_]\w*\s*\(.*\)$')
_STATE_RE = re.compile(r'^(LOW|HIGH)$', re.IGNORECASE)
_ENUM_RE = re.compile(r'^[A-Z0-9_]{2,}$')
_MAC_RE = re.compile(r'^\{\s*(0x[0-9A-F]{2}\s*,?\s*){6}\}$', re.IGNORECASE)
_INT_ARRAY_RE = re.compile(r'^\{(\s*[-+]?\s*\d+\s*(,\s*)?)+\}$')
_FLOAT_ARRAY_RE = re.compile(
    r'^\{(\s*[-+]?\s*(\d+\.\d*|\d*\.\d+|\d+)([eE][-+]?\d+)?[fF]?\s*(,\s*)?)+\}$'
)


@dataclass
class Classification:
    """Result of classifying one literal value."""
    value_type: ValueType
    value: Optional[OptionValue]
    options: Optional[str] = None


def _to_int(text: str) -> int:
    return int(text.replace(' ', ''))


def _to_float(text: str) -> float:
    return float(text.replace(' ', '').rstrip('fF'))


def _canonical_state(text: str) -> str:
    """Map 0/1/LOW/HIGH spellings onto HIGH or LOW."""
    upper = text.strip().upper()
    if upper in ('1', 'HIGH', 'TRUE'):
        return 'HIGH'
    if upper in ('0', 'LOW', 'FALSE'):
        return 'LOW'
    return text


def classify_value(value: str, name: str = '') -> Classification:
    """Classify the literal *value* of the define called *name*."""
    val = value.strip()

    if val == '':
        return Classification(ValueType.SWITCH, None)

    if _PIN_NAME_RE.match(name):
        return Classification(ValueType.PIN, val)

    if _BOOL_RE.match(val):
        return Classification(ValueType.BOOL, val.lower() == 'true')

    if name.endswith('_ENABLE_ON'):
        return Classification(ValueType.STATE, _canonical_state(val))

    if name.endswith('_HOME_DIR'):
        dir_value: OptionValue = _to_int(val) if _INT_RE.match(val) else val
        return Classification(ValueType.DIR, dir_value, HOME_DIR_OPTIONS)

    if _INT_RE.match(val):
        return Classification(ValueType.INT, _to_int(val))

    if _FLOAT_RE.match(val):
        return Classification(ValueType.FLOAT, _to_float(val))

    if _MACRO_RE.match(val):
        return Classification(ValueType.MACRO, val)

    first = val[0]
    if first == '"':
        value_type = ValueType.STRING
    elif first == "'":
        value_type = ValueType.CHAR
    elif _STATE_RE.match(val):
        return Classification(ValueType.STATE, val.upper())
    elif _ENUM_RE.match(val):
        value_type = ValueType.ENUM
    elif _MAC_RE.match(val):
        value_type = ValueType.MAC
    elif _INT_ARRAY_RE.match(val):
        value_type = ValueType.INT_ARRAY
    elif _FLOAT_ARRAY_RE.match(val):
        value_type = ValueType.FLOAT_ARRAY
    elif first == '{':
        value_type = ValueType.ARRAY
    else:
        value_type = ValueType.UNTYPED

    return Classification(value_type, val)


def coerce_value(value_type: ValueType, raw: Optional[OptionValue]) -> Optional[OptionValue]:
    """Convert an edited value into the native type its value_type implies.

    Values that do not fit the type are kept as given so an edit is never lost.
    """
    if raw is None or value_type is ValueType.SWITCH:
        return None
    if not isinstance(raw, str):
        return raw

    text = raw.strip()
    if value_type is ValueType.BOOL and _BOOL_RE.match(text):
        return text.lower() == 'true'
    if value_type in (ValueType.INT, ValueType.DIR) and _INT_RE.match(text):
        return _to_int(text)
    if value_type is ValueType.FLOAT and (_FLOAT_RE.match(text) or _INT_RE.match(text)):
        return _to_float(text)
    if value_type is ValueType.STATE:
        return _canonical_state(text)
    return text


def format_value(value: Optional[OptionValue]) -> str:
    """Render a typed value back into #define literal text."""
    if value is None:
        return ''
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value)
