"""Configuration Line Classifier

Turns configuration header text into a stream of directive events:

    #define NAME [VALUE]        -- an option (commented out with // when disabled)
    #define NAME(P, ...) BODY   -- a function-like helper used by MAP / REPEAT
    #undef  NAME                -- retroactively removes NAME
    #if / #ifdef / #ifndef      -- open a conditional block
    #elif / #else               -- flip the current conditional block
    #endif                      -- close a conditional block

Comments are not thrown away. They are collected and attached to the
next #define:

    /** block comments */      -- leading comment for the next define
    // runs of slash comments   -- same, line by line
    #define A 1  // trailing    -- end-of-line comment, which may continue on
                                   the following // lines
    // @section NAME            -- switches the current section
    // :[1, 2, 3]  or  :{...}   -- enumerated options for the next define(s)

A block comment introducing a "Temperature sensors ...:" list is harvested
into an options table of `N : description` entries.

Key design decisions:
  - Lines joined by a trailing backslash are processed as one logical line
    that remembers its first and last physical line numbers.
  - Lines that are not directives or comments are ordinary C code and are
    skipped silently.
  - The classifier performs no evaluation and no I/O.
"""

import json
import logging
import re
from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterator, List, Optional, Tuple

logger = logging.getLogger(__name__)


class LineType(Enum):
    DEFINE = auto()
    UNDEF = auto()
    IF = auto()
    IFDEF = auto()
    IFNDEF = auto()
    ELIF = auto()
    ELSE = auto()
    ENDIF = auto()
    EOL_COMMENT = auto()    # trailing comment finished for the last define


class ParseState(Enum):
    NORMAL = auto()         # Not inside any comment
    BLOCK_COMMENT = auto()  # Looking for the end of a /* comment
    EOL_COMMENT = auto()    # Comment after a define, maybe continued on the next lines
    SLASH_COMMENT = auto()  # Block-like comment made of // lines
    GET_SENSORS = auto()    # Gathering temperature sensor options


@dataclass
class LogicalLine:
    text: str
    line_start: int
    line_end: int


@dataclass
class ConfigLine:
    """One classified directive with the comment state that applies to it."""
    type: LineType
    line_start: int
    line_end: int
    section: str
    name: str = ''
    value: str = ''
    params: Optional[str] = None
    enabled: bool = True
    condition: str = ''
    comment: str = ''
    options: Optional[str] = None


# ---------------------------------------------------------------------------
# Patterns
# ---------------------------------------------------------------------------

# #define NAME[(params)] [VALUE] [// COMMENT], possibly commented out
_DEFINE_RE = re.compile(
    r'^(//)?\s*#define\s+([A-Za-z0-9_]+)(\([^)]*\))?\s*(.*?)\s*(//.+)?$')
_COMMENTED_DEFINE_RE = re.compile(r'^//\s*#define')
_UNDEF_RE = re.compile(r'^\s*#undef\s+(\S+)')
_DIRECTIVE_RE = re.compile(r'^\s*#\s*(\w+)(.*)', re.DOTALL)
_DIRECTIVE_LINE_RE = re.compile(r'^\s*(//)?\s*#')
_SENSORS_START_RE = re.compile(r'temperature sensors.*:', re.IGNORECASE)
_SENSOR_RE = re.compile(r'^(-?\d+)\s*:\s*(.+)$')

_CONDITIONALS = {
    'if': LineType.IF,
    'ifdef': LineType.IFDEF,
    'ifndef': LineType.IFNDEF,
    'elif': LineType.ELIF,
    'else': LineType.ELSE,
    'endif': LineType.ENDIF,
}

# A trailing comment further right than this column belongs to the define
EOL_COMMENT_COLUMN = 10


def join_lines(text: str, line_offset: int = 0) -> Iterator[LogicalLine]:
    """Yield trimmed logical lines, joining backslash continuations."""
    line = ''
    line_start = line_offset + 1
    joining = False

    for number, raw in enumerate(re.split(r'\r?\n', text), start=line_offset + 1):
        raw = raw.strip()
        if joining:
            line += (' ' if line else '') + raw
        else:
            line = raw
            line_start = number

        joining = line.endswith('\\')
        if joining:
            line = line[:-1].strip()
            continue

        yield LogicalLine(line, line_start, number)

    if joining:
        yield LogicalLine(line, line_start, line_offset + len(re.split(r'\r?\n', text)))


def stripped_config(text: str) -> Tuple[str, int]:
    """Keep only directive lines (enabled or commented out).

    Returns the stripped text and its number of lines. Continuations are
    joined so every kept directive occupies exactly one line.
    """
    out: List[str] = []
    current = ''
    joining = False
    for line in text.split('\n'):
        line = line.rstrip('\r')
        if not joining and not _DIRECTIVE_LINE_RE.match(line):
            continue
        if current:
            line = line.lstrip()
        stripped = line.rstrip()
        joining = stripped.endswith('\\')
        if joining:
            current += stripped[:-1].rstrip() + ' '
            continue
        out.append(current + line)
        current = ''
    if joining:
        out.append(current.rstrip())
    return ''.join(item + '\n' for item in out), len(out)


# ---------------------------------------------------------------------------
# Scanner
# ---------------------------------------------------------------------------

class ConfigScanner:
    """Comment-aware state machine over logical lines."""

    def __init__(self, default_section: str = 'none'):
        self.section = default_section
        self.state = ParseState.NORMAL
        self.comment_buff: List[str] = []
        self.prev_comment = ''
        self.options_json = ''
        self.eol_options = False
        self.sensors: dict = {}

    def use_comment(self, text: str) -> None:
        """Process one comment line: options marker, @section, or plain text."""
        if text.startswith(':'):
            rest = text[1:].strip()
            close = ''
            if rest.startswith('{'):
                close = '}'
            elif rest.startswith('['):
                close = ']'
            end = text.rfind(close) if close else -1
            if end > 0:
                self.options_json = text[1:end + 1].strip()
                trailing = text[end + 1:].strip()
                if trailing:
                    self.comment_buff.append(trailing)
            # A ':' note without a list or table carries nothing usable
        elif text.startswith('@section'):
            self.section = text[8:].strip()
            logger.debug(f"Section '{self.section}'")
        elif not text.startswith('========'):
            self.comment_buff.append(text)

    def _finish_sensors(self) -> None:
        self.options_json = json.dumps(self.sensors)
        self.sensors = {}

    def _block_line(self, text: str) -> None:
        """Handle the inside of a block comment (after the opening line)."""
        if text.startswith('*'):
            text = text[1:]
        tline = text.strip()

        if self.state == ParseState.GET_SENSORS:
            sensor = _SENSOR_RE.match(tline)
            if sensor:
                self.sensors[sensor.group(1)] = f"{sensor.group(1)} - {sensor.group(2)}"
        elif _SENSORS_START_RE.search(tline):
            self.state = ParseState.GET_SENSORS
            self.sensors = {}
            self.use_comment('Temperature Sensors')
        else:
            self.use_comment(tline)

    def _flush_eol(self, line: LogicalLine) -> ConfigLine:
        text = '\n'.join(self.comment_buff)
        self.comment_buff = []
        self.state = ParseState.NORMAL
        logger.debug(f"[{line.line_start}] Ending EOL comment")
        return ConfigLine(LineType.EOL_COMMENT, line.line_start, line.line_end,
                          self.section, comment=text)

    def _take_comment(self) -> str:
        if self.prev_comment:
            comment, self.prev_comment = self.prev_comment, ''
            return comment
        if self.state != ParseState.EOL_COMMENT:
            comment = '\n'.join(self.comment_buff)
            self.comment_buff = []
            return comment
        return ''

    def _take_options(self) -> Optional[str]:
        if not self.options_json:
            return None
        options = self.options_json
        if self.eol_options:
            self.options_json = ''
        return options

    def scan(self, text: str, line_offset: int = 0) -> Iterator[ConfigLine]:
        """Classify *text* and yield one event per directive."""
        last = None
        for logical in join_lines(text, line_offset):
            last = logical
            line = logical.text
            defmatch = _DEFINE_RE.match(line)
            is_comment = line.startswith('//')

            # A trailing comment may continue on following // lines
            if self.state == ParseState.EOL_COMMENT:
                if defmatch is None and is_comment:
                    self.comment_buff.append(line[2:].strip())
                    continue
                yield self._flush_eol(logical)

            if self.state == ParseState.SLASH_COMMENT:
                if defmatch is None and is_comment:
                    self.use_comment(line[2:].strip())
                    continue
                self.state = ParseState.NORMAL

            if self.state in (ParseState.BLOCK_COMMENT, ParseState.GET_SENSORS):
                end = line.find('*/')
                if end < 0:
                    self._block_line(line)
                    continue
                if line[:end].strip():
                    self._block_line(line[:end].strip())
                if self.state == ParseState.GET_SENSORS:
                    self._finish_sensors()
                self.state = ParseState.NORMAL
                line = line[end + 2:].strip()
                if not line:
                    continue
                defmatch = _DEFINE_RE.match(line)

            # Only the first comment opener on the line counts
            skip = 2 if _COMMENTED_DEFINE_RE.match(line) else 0
            block_pos = line.find('/*')
            slash_pos = line.find('//', skip)

            if block_pos != -1 and (slash_pos == -1 or block_pos < slash_pos):
                cline = line[block_pos + 2:].strip()
                line = line[:block_pos].strip()
                self.comment_buff = []
                self.options_json = ''
                self.eol_options = False
                close = cline.find('*/')
                if close >= 0:
                    # Opened and closed on the same line
                    cline = cline[:close].strip()
                    if cline.startswith('*'):
                        cline = cline[1:].strip()
                    if cline:
                        self.use_comment(cline)
                else:
                    self.state = ParseState.BLOCK_COMMENT
                    if cline.startswith('*'):
                        cline = cline[1:].strip()
                    if cline:
                        self._block_line(cline)

            elif slash_pos != -1:
                cline = line[slash_pos + 2:].strip()
                if defmatch is not None and slash_pos > EOL_COMMENT_COLUMN:
                    self.state = ParseState.EOL_COMMENT
                    self.prev_comment = '\n'.join(self.comment_buff)
                    logger.debug(f"[{logical.line_start}] Begin EOL comment")
                else:
                    self.state = ParseState.SLASH_COMMENT
                    self.options_json = ''
                self.comment_buff = []
                line = line[:slash_pos].strip()
                # Options on a trailing or slash comment apply only once
                self.eol_options = cline.startswith(':')
                if cline:
                    self.use_comment(cline)

            # Blank line, or nothing before the comment
            if not line:
                if block_pos == -1 and slash_pos == -1:
                    self.options_json = ''
                continue

            event = self._classify(line, logical)
            if event is not None:
                yield event

        if self.state == ParseState.EOL_COMMENT and last is not None:
            yield self._flush_eol(last)

    def _classify(self, line: str, logical: LogicalLine) -> Optional[ConfigLine]:
        """Classify the comment-free part of a line."""
        directive = _DIRECTIVE_RE.match(line)
        if directive and directive.group(1) in _CONDITIONALS:
            kind = _CONDITIONALS[directive.group(1)]
            return ConfigLine(kind, logical.line_start, logical.line_end,
                              self.section, condition=directive.group(2).strip())

        defmatch = _DEFINE_RE.match(line)
        if defmatch:
            params = defmatch.group(3)
            return ConfigLine(
                LineType.DEFINE, logical.line_start, logical.line_end, self.section,
                name=defmatch.group(2),
                value=defmatch.group(4),
                params=params[1:-1].strip() if params else None,
                enabled=not defmatch.group(1),
                comment=self._take_comment(),
                options=self._take_options(),
            )

        undef = _UNDEF_RE.match(line)
        if undef:
            return ConfigLine(LineType.UNDEF, logical.line_start, logical.line_end,
                              self.section, name=undef.group(1))

        return None


def scan_config(text: str, line_offset: int = 0,
                default_section: str = 'none') -> List[ConfigLine]:
    """Convenience function to classify a whole document."""
    return list(ConfigScanner(default_section).scan(text, line_offset))
