"""Option records: one per #define occurrence."""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from .value_types import ValueType, OptionValue


@dataclass
class OriginalState:
    """Enabled state and value as parsed, before any edit."""
    enabled: bool
    value: Optional[OptionValue] = None


@dataclass
class ConfigOption:
    """One #define occurrence in a configuration document.

    The payload (`value`) is interpreted according to `value_type`:
    switches carry no value, bool/int/float carry native Python values,
    everything else keeps its literal text.
    """
    serial_id: int
    section: str
    name: str
    enabled: bool
    value: Optional[OptionValue] = None
    value_type: ValueType = ValueType.SWITCH
    line_start: int = 0
    line_end: int = 0
    requires: Optional[str] = None
    depth: int = 0
    group: Optional[str] = None
    comment: Optional[str] = None
    notes: Optional[str] = None
    units: Optional[str] = None
    options: Optional[str] = None
    params: Optional[str] = None    # parameter list of a function-like helper
    undef: Optional[int] = None
    evaled: Optional[bool] = None
    error: Optional[str] = None
    orig: Optional[OriginalState] = None
    dirty: bool = False

    def __post_init__(self):
        if self.orig is None:
            self.orig = OriginalState(self.enabled, self.value)

    @property
    def writable(self) -> bool:
        """Only lines inside the physical document can be written back."""
        return self.line_start >= 1

    def is_defined_before(self, before: int) -> bool:
        """Present (not yet #undef'd) at the point of serial id *before*."""
        return self.serial_id < before and (self.undef is None or self.undef > before)

    def to_dict(self) -> Dict[str, Any]:
        """Plain data for JSON transport. Unset optional fields are left out."""
        data: Dict[str, Any] = {
            'sid': self.serial_id,
            'section': self.section,
            'name': self.name,
            'enabled': self.enabled,
            'type': self.value_type.value,
            'line': self.line_start,
            'line_end': self.line_end,
        }
        optional = {
            'value': self.value,
            'requires': self.requires,
            'depth': self.depth if self.requires is not None else None,
            'group': self.group,
            'comment': self.comment,
            'notes': self.notes,
            'units': self.units,
            'options': self.options,
            'params': self.params,
            'undef': self.undef,
            'evaled': self.evaled,
            'error': self.error,
        }
        data.update({k: v for k, v in optional.items() if v is not None})
        if self.dirty:
            data['dirty'] = True
        if self.orig is not None and (self.orig.enabled, self.orig.value) != (self.enabled, self.value):
            data['orig'] = {'enabled': self.orig.enabled, 'value': self.orig.value}
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ConfigOption':
        orig = data.get('orig')
        return cls(
            serial_id=data['sid'],
            section=data['section'],
            name=data['name'],
            enabled=data['enabled'],
            value=data.get('value'),
            value_type=ValueType(data.get('type', '')),
            line_start=data.get('line', 0),
            line_end=data.get('line_end', data.get('line', 0)),
            requires=data.get('requires'),
            depth=data.get('depth', 0),
            group=data.get('group'),
            comment=data.get('comment'),
            notes=data.get('notes'),
            units=data.get('units'),
            options=data.get('options'),
            params=data.get('params'),
            undef=data.get('undef'),
            evaled=data.get('evaled'),
            error=data.get('error'),
            orig=OriginalState(orig['enabled'], orig.get('value')) if orig else None,
            dirty=data.get('dirty', False),
        )
