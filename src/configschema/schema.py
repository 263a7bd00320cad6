"""Configuration Schema

Builds an ordered, indexed model of every #define in a configuration
document and keeps each option's reachability (`evaled`) up to date.

    schema = ConfigSchema.from_text(text)
    schema.by_section['machine']['MOTHERBOARD'].value
    schema.apply_edit(sid, {'enabled': False})   # re-evaluates sid+1 ...

Key design decisions:
  - Serial ids start at 1 and follow document order. An #undef consumes a
    serial id of its own but stores no record, so `by_serial_id` has holes.
  - A name that occurs twice in one section is stored as a list of records
    in document order; the first occurrence is never overwritten.
  - Options whose names imply an axis, extruder, heater or serial port get
    an extra requirement from the naming convention alone.
  - Nothing here raises on a malformed document. Unbalanced conditionals
    are recorded in `warnings` and evaluator failures on the record itself.
"""

import ast
import json
import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from .conditions import ConditionStack, atomize
from .config import SchemaConfig, DEFAULT_CONFIG
from .edits import OptionEdit, apply_edit, apply_edits, select_in_group
from .evaluator import RequirementEvaluator
from .preprocessor import ConfigScanner, ConfigLine, LineType
from .records import ConfigOption
from .value_types import ValueType, classify_value, format_value

logger = logging.getLogger(__name__)


SectionEntry = Union[ConfigOption, List[ConfigOption]]


@dataclass
class IntegrityWarning:
    """A structural problem in the document (the parse continues)."""
    line: int
    directive: str
    message: str

    def __str__(self) -> str:
        return f"line {self.line}: {self.message}"


# ---------------------------------------------------------------------------
# Naming-convention dependencies
# ---------------------------------------------------------------------------

_AXIS_SUFFIXES = (
    '_CHAIN_POS|_CS_PIN|_CURRENT_HOME|_CURRENT|_ENABLE_ON|_HOLD_MULTIPLIER|_HOME_DIR'
    '|_HYBRID_THRESHOLD|_INTERPOLATE|_MAX_CURRENT|_MAX_ENDSTOP_INVERTING|_MAX_POS'
    '|_MICROSTEPS|_MIN_ENDSTOP_INVERTING|_MIN_POS|_RSENSE|_SENSE_RESISTOR'
    '|_SLAVE_ADDRESS|_STALL_SENSITIVITY'
)
_AXIS_PREFIXES = (
    'CHOPPER_TIMING_|DISABLE_|DISABLE_INACTIVE_|MAX_SOFTWARE_ENDSTOP_'
    '|MIN_SOFTWARE_ENDSTOP_|SAFE_BED_LEVELING_START_|STEALTHCHOP_'
)
_EAXIS_SUFFIXES = (
    '_DRIVER_TYPE|_AUTO_FAN_PIN|_FAN_TACHO_PIN|_FAN_TACHO_PULLUP|_FAN_TACHO_PULLDOWN'
    '|_MAX_CURRENT|_SENSE_RESISTOR|_MICROSTEPS|_CURRENT|_RSENSE|_CHAIN_POS'
    '|_INTERPOLATE|_HOLD_MULTIPLIER|_CS_PIN|_SLAVE_ADDRESS|_HYBRID_THRESHOLD'
)

_EAXIS_PATTERNS = [
    re.compile(r'\bE(\d)(' + _EAXIS_SUFFIXES + r')\b'),
    re.compile(r'\bCHOPPER_TIMING_E(\d)\b'),
    re.compile(r'\bINVERT_E(\d)_DIR\b'),
    re.compile(r'\bHEATER_(\d)_M(?:IN|AX)TEMP\b'),
    re.compile(r'\bTEMP_SENSOR_(\d)\b'),
    re.compile(r'\bFIL_RUNOUT(\d)_(?:STATE|PULL(?:UP|DOWN))\b'),
]
_HEATER_PATTERNS = [
    re.compile(r'\b(BED|CHAMBER|COOLER)_(?:PULLUP_RESISTOR_OHMS|RESISTANCE_25C_OHMS|BETA|SH_C_COEFF)\b'),
    re.compile(r'\bHOTEND(\d)_.+\b'),
    re.compile(r'\bHEATER_(\d)_M(?:IN|AX)TEMP\b'),
]
_BAUDRATE_RE = re.compile(r'^BAUDRATE_(\d)$')
_SERIAL_PORT_RE = re.compile(r'^SERIAL_PORT_(\d)$')
_UNITS_RE = re.compile(r'^\(([^)]+)\)')


@lru_cache(maxsize=None)
def _axis_patterns(axes: str) -> List[re.Pattern]:
    axis = f'[{axes}]\\d?'
    return [
        re.compile(r'\b(' + axis + r')(?:' + _AXIS_SUFFIXES + r')\b'),
        re.compile(r'\b(?:' + _AXIS_PREFIXES + r')(' + axis + r')\b'),
        re.compile(r'\bINVERT_(' + axis + r')(?:_DIR|_STEP_PIN)\b'),
        re.compile(r'\bMANUAL_(' + axis + r')_HOME_POS\b'),
        re.compile(r'\bUSE_(' + axis + r')(?:MIN|MAX)_PLUG\b'),
        re.compile(r'\bENDSTOPPULL(?:UP|DOWN)_(' + axis + r')(?:MIN|MAX)\b'),
    ]


def _first_match(patterns: List[re.Pattern], name: str) -> str:
    for pattern in patterns:
        match = pattern.search(name)
        if match:
            return match.group(1)
    return ''


def implied_requirements(name: str, config: SchemaConfig = DEFAULT_CONFIG) -> List[str]:
    """Requirements implied by the option name alone."""
    implied = []
    axis = _first_match(_axis_patterns(''.join(config.axis_names)), name)
    if axis:
        implied.append(f"HAS_AXIS({axis})")
    eindex = _first_match(_EAXIS_PATTERNS, name)
    if eindex:
        implied.append(f"HAS_EAXIS({eindex})")
    heater = _first_match(_HEATER_PATTERNS, name)
    if heater:
        implied.append(f"HAS_SENSOR({heater})")

    baud = _BAUDRATE_RE.match(name)
    port = _SERIAL_PORT_RE.match(name)
    if baud:
        implied.append(f"HAS_SERIAL({baud.group(1)})")
    elif port and int(port.group(1)) >= 3:
        implied.append(f"HAS_SERIAL({int(port.group(1)) - 1})")

    if name == 'THERMOCOUPLE_MAX_ERRORS':
        implied.append("HAS_MAX_TC()")
    return implied


def parse_units(comment: Optional[str]) -> Optional[str]:
    """Units from a leading "(unit)" marker in a comment."""
    if not comment:
        return None
    match = _UNITS_RE.match(comment)
    if not match:
        return None
    units = match.group(1)
    return 'seconds' if units in ('s', 'sec') else units


def accept_options(options: Optional[str], value) -> Optional[str]:
    """Keep an options annotation only when *value* is one of its choices."""
    if not options or value is None:
        return None
    try:
        parsed = json.loads(options)
    except ValueError:
        try:
            parsed = ast.literal_eval(options)
        except (ValueError, SyntaxError):
            return None

    if isinstance(parsed, dict):
        choices = list(parsed.keys())
    elif isinstance(parsed, (list, tuple)):
        choices = [c[0] if isinstance(c, (list, tuple)) and c else c for c in parsed]
    else:
        return None

    def norm(v):
        return format_value(v).strip().strip('"\'')

    wanted = norm(value)
    if any(norm(choice) == wanted for choice in choices):
        return options
    return None


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

class ConfigSchema:
    """Ordered, indexed collection of option records for one document."""

    def __init__(self, config: Optional[SchemaConfig] = None):
        self.config = config or DEFAULT_CONFIG
        self.by_section: Dict[str, Dict[str, SectionEntry]] = {}
        self.by_serial_id: List[Optional[ConfigOption]] = [None]
        self.warnings: List[IntegrityWarning] = []
        self._by_name: Dict[str, List[ConfigOption]] = {}
        # (serial_id, name, requires) for each #undef, in document order
        self.undefs: List[Tuple[int, str, Optional[str]]] = []
        self.evaluator = RequirementEvaluator(self)

    # --- Construction --------------------------------------------------

    @classmethod
    def from_text(cls, text: str, line_offset: int = 0,
                  config: Optional[SchemaConfig] = None) -> 'ConfigSchema':
        schema = cls(config)
        schema.import_text(text, line_offset)
        return schema

    @classmethod
    def from_data(cls, data: Dict[str, Dict[str, Any]],
                  config: Optional[SchemaConfig] = None) -> 'ConfigSchema':
        """Rebuild a schema from `to_data()` output without re-parsing text."""
        schema = cls(config)
        records = []
        for section, options in data.items():
            schema.by_section[section] = {}
            for name, entry in options.items():
                items = entry if isinstance(entry, list) else [entry]
                built = [ConfigOption.from_dict(item) for item in items]
                schema.by_section[section][name] = built if isinstance(entry, list) else built[0]
                records.extend(built)
        for record in sorted(records, key=lambda r: r.serial_id):
            schema._register(record)
        return schema

    def import_text(self, text: str, line_offset: int = 0) -> None:
        """Replace the schema contents with a full parse of *text*."""
        self.by_section = {section: {} for section in self.config.section_order}
        self.by_serial_id = [None]
        self.warnings = []
        self._by_name = {}
        self.undefs = []

        _SchemaBuilder(self).build(text, line_offset)

        for section in [s for s, opts in self.by_section.items() if not opts]:
            del self.by_section[section]
        self.refresh_all()
        logger.debug(f"Imported {len(self.records())} options "
                     f"in {len(self.by_section)} sections")

    def _register(self, record: ConfigOption) -> None:
        while len(self.by_serial_id) <= record.serial_id:
            self.by_serial_id.append(None)
        self.by_serial_id[record.serial_id] = record
        self._by_name.setdefault(record.name, []).append(record)

    def add_record(self, record: ConfigOption) -> None:
        """Append a record, turning a repeated name into a list."""
        section = self.by_section.setdefault(record.section, {})
        existing = section.get(record.name)
        if existing is None:
            section[record.name] = record
        elif isinstance(existing, list):
            existing.append(record)
        else:
            section[record.name] = [existing, record]
            logger.debug(f"Duplicate #define {record.name} in '{record.section}'")
        self._register(record)

    # --- Evaluation ----------------------------------------------------

    def evaluate(self, record: ConfigOption) -> bool:
        return self.evaluator.evaluate(record)

    def evaluate_condition(self, cond: Optional[str], before: int) -> bool:
        return self.evaluator.evaluate_condition(cond, before)

    def refresh_all(self) -> None:
        """Clear and recompute `evaled` for every record in serial order."""
        for record in self.records():
            record.evaled = None
        self._restamp(0)
        for record in self.records():
            self.evaluate(record)

    def refresh_after(self, after: int) -> Dict[int, bool]:
        """Recompute records with serial id > *after*.

        Returns {serial_id: evaled} for the records whose state changed.
        """
        later = [r for r in self.records() if r.serial_id > after]
        previous = {r.serial_id: r.evaled for r in later}
        for record in later:
            record.evaled = None
        self._restamp(after)
        for record in later:
            self.evaluate(record)
        return {r.serial_id: r.evaled for r in later if r.evaled != previous[r.serial_id]}

    def _restamp(self, after: int) -> None:
        """Re-derive the #undef stamps of every #undef past *after*.

        Whether a guarded #undef is reachable depends on the current state,
        so stamps are cleared and applied again in serial order. The first
        reachable #undef after a record wins. A schema rebuilt with
        `from_data` has no #undef events and keeps its stored stamps.
        """
        if not self.undefs:
            return
        for record in self.records():
            if record.undef is not None and record.undef > after:
                record.undef = None
        for sid, name, requires in self.undefs:
            if sid <= after:
                continue
            if requires and not self.evaluate_condition(requires, sid):
                logger.debug(f"#undef {name} ({sid}) not reachable")
                continue
            for record in self._by_name.get(name, []):
                if record.serial_id < sid and record.undef is None:
                    record.undef = sid

    # --- Lookups used by the evaluator ----------------------------------

    def occurrences_before(self, name: str, before: int) -> List[ConfigOption]:
        """Records named *name* with a serial id below *before*, in order."""
        return [r for r in self._by_name.get(name, []) if r.serial_id < before]

    def records_before(self, before: int) -> List[ConfigOption]:
        return [r for r in self.by_serial_id[1:before] if r is not None]

    # --- Queries -------------------------------------------------------

    def records(self) -> List[ConfigOption]:
        """All records in serial order."""
        return [r for r in self.by_serial_id if r is not None]

    def get_record(self, serial_id: int) -> Optional[ConfigOption]:
        if 0 < serial_id < len(self.by_serial_id):
            return self.by_serial_id[serial_id]
        return None

    def records_named(self, name: str) -> List[ConfigOption]:
        return list(self._by_name.get(name, []))

    @staticmethod
    def defined_before(record: ConfigOption, before: Optional[int]) -> bool:
        """Was *record* present at serial id *before*? None means anywhere."""
        if before is None:
            return True
        return record.is_defined_before(before)

    def get_items(self, fn: Callable[[ConfigOption], bool],
                  before: Optional[int] = None,
                  limit: Optional[int] = None) -> List[ConfigOption]:
        """Records passing *fn* and defined before *before*, in serial order."""
        results = []
        for record in self.records():
            if before is not None and record.serial_id >= before:
                break
            if self.defined_before(record, before) and fn(record):
                results.append(record)
                if limit and len(results) >= limit:
                    break
        return results

    def count_items(self, fn: Callable[[ConfigOption], bool],
                    before: Optional[int] = None,
                    limit: Optional[int] = None) -> int:
        return len(self.get_items(fn, before, limit))

    def first_item(self, fn: Callable[[ConfigOption], bool],
                   before: Optional[int] = None) -> Optional[ConfigOption]:
        items = self.get_items(fn, before, 1)
        return items[0] if items else None

    def last_item(self, fn: Callable[[ConfigOption], bool],
                  before: Optional[int] = None) -> Optional[ConfigOption]:
        items = self.get_items(fn, before)
        return items[-1] if items else None

    def first_item_with_name(self, name: str,
                             before: Optional[int] = None) -> Optional[ConfigOption]:
        for record in self._by_name.get(name, []):
            if self.defined_before(record, before):
                return record
        return None

    def last_item_with_name(self, name: str,
                            before: Optional[int] = None) -> Optional[ConfigOption]:
        found = None
        for record in self._by_name.get(name, []):
            if self.defined_before(record, before):
                found = record
        return found

    def value_before(self, name: str, before: Optional[int] = None):
        """Value of the nearest occurrence of *name* before *before*."""
        record = self.last_item_with_name(name, before)
        return record.value if record is not None else None

    def is_enabled_before(self, name: str, before: Optional[int] = None) -> bool:
        """Is some enabled, reachable occurrence of *name* present at *before*?"""
        return any(r.enabled and self.defined_before(r, before) and self.evaluate(r)
                   for r in self._by_name.get(name, []))

    def is_enabled(self, name: str) -> bool:
        """Is *name* enabled anywhere in the document?"""
        return self.is_enabled_before(name, None)

    # --- Editing -------------------------------------------------------

    def apply_edit(self, serial_id: int, changes: Dict[str, Any]) -> Dict[int, bool]:
        return apply_edit(self, serial_id, changes)

    def apply_edits(self, edits: List[OptionEdit]) -> Dict[int, bool]:
        return apply_edits(self, edits)

    def select_in_group(self, serial_id: int) -> Dict[int, bool]:
        return select_in_group(self, serial_id)

    # --- Serialization -------------------------------------------------

    def to_data(self) -> Dict[str, Dict[str, Any]]:
        """Plain nested data: section -> name -> record dict or list of dicts."""
        data: Dict[str, Dict[str, Any]] = {}
        for section, options in self.by_section.items():
            data[section] = {}
            for name, entry in options.items():
                if isinstance(entry, list):
                    data[section][name] = [r.to_dict() for r in entry]
                else:
                    data[section][name] = entry.to_dict()
        return data

    def to_json(self, indent: Optional[int] = None) -> str:
        return json.dumps(self.to_data(), indent=indent)


class _SchemaBuilder:
    """Drives the scanner, typer and condition stack over one document."""

    def __init__(self, schema: ConfigSchema):
        self.schema = schema
        self.config = schema.config
        self.conditions = ConditionStack()
        self.sid = 0
        self.last_added: Optional[ConfigOption] = None

    def build(self, text: str, line_offset: int) -> None:
        scanner = ConfigScanner(self.config.default_section)
        handlers = {
            LineType.DEFINE: self.on_define,
            LineType.UNDEF: self.on_undef,
            LineType.EOL_COMMENT: self.on_eol_comment,
        }
        for event in scanner.scan(text, line_offset):
            handler = handlers.get(event.type, self.on_conditional)
            handler(event)

        if self.conditions.depth:
            self.warn(line_offset + text.count('\n') + 1, '#endif',
                      f"{self.conditions.depth} unterminated #if block(s) at end of file")

    def warn(self, line: int, directive: str, message: str) -> None:
        warning = IntegrityWarning(line, directive, message)
        self.schema.warnings.append(warning)
        logger.warning(f"Unbalanced conditionals at {warning}")

    def on_conditional(self, event: ConfigLine) -> None:
        stack = self.conditions
        if event.type is LineType.IF:
            stack.push_if(event.condition)
        elif event.type is LineType.IFDEF:
            stack.push_ifdef(event.condition.split()[0] if event.condition else '')
        elif event.type is LineType.IFNDEF:
            stack.push_ifndef(event.condition.split()[0] if event.condition else '')
        else:
            directive = '#' + event.type.name.lower()
            if event.type is LineType.ELIF:
                ok = stack.elif_(event.condition)
            elif event.type is LineType.ELSE:
                ok = stack.else_()
            else:
                ok = stack.endif()
            if not ok:
                self.warn(event.line_start, directive, f"{directive} without a matching #if")

    def requirement_for(self, name: str) -> Optional[str]:
        requires = self.conditions.requires()
        implied = implied_requirements(name, self.config)
        if not implied:
            return requires
        if requires:
            implied.append(atomize(requires))
        return ' && '.join(implied)

    def on_define(self, event: ConfigLine) -> None:
        name = event.name
        if name in self.config.ignored_names:
            self.last_added = None
            return

        self.sid += 1

        if event.params is not None:
            value_type, value, options = ValueType.MACRO, event.value or None, None
        else:
            typed = classify_value(event.value, name)
            value_type, value = typed.value_type, typed.value
            options = typed.options or accept_options(event.options, value)

        record = ConfigOption(
            serial_id=self.sid,
            section=event.section,
            name=name,
            enabled=event.enabled,
            value=value,
            value_type=value_type,
            line_start=event.line_start,
            line_end=event.line_end,
            requires=self.requirement_for(name),
            depth=self.conditions.depth,
            comment=event.comment or None,
            units=parse_units(event.comment),
            options=options,
            params=event.params,
        )
        self.assign_group(record)
        self.schema.add_record(record)
        self.last_added = record
        logger.debug(f"[{event.line_start}] #define {name} in '{record.section}'")

    def assign_group(self, record: ConfigOption) -> None:
        group = self.config.group_for(record.name)
        if group:
            record.group = group
            return
        previous = self.schema.by_serial_id[-1]
        if previous is not None and previous.name == record.name \
                and (previous.group is None or previous.group == record.name.lower()):
            previous.group = record.group = record.name.lower()

    def on_undef(self, event: ConfigLine) -> None:
        self.sid += 1
        self.schema.by_serial_id.append(None)
        self.last_added = None
        # Stamped by refresh_all() once the whole document is in
        self.schema.undefs.append((self.sid, event.name, self.conditions.requires() or None))

    def on_eol_comment(self, event: ConfigLine) -> None:
        record = self.last_added
        if record is None or not event.comment:
            return
        if record.comment:
            record.notes = event.comment
        else:
            record.comment = event.comment
        if record.units is None:
            record.units = parse_units(event.comment)
