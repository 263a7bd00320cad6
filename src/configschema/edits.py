"""Incremental Update API

Applies field edits to option records and re-evaluates only the records
that follow the earliest edited one. Text write-back is left to callers.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .records import ConfigOption
from .value_types import ValueType, coerce_value


EDITABLE_FIELDS = ('enabled', 'value', 'value_type')


class SchemaError(Exception):
    """Raised for an edit the schema cannot apply."""
    def __init__(self, message: str, serial_id: Optional[int] = None):
        loc = f"option #{serial_id}: " if serial_id is not None else ""
        super().__init__(f"Schema error: {loc}{message}")
        self.serial_id = serial_id


@dataclass
class OptionEdit:
    """A single-record edit request."""
    serial_id: int
    changes: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_request(cls, request: Dict[str, Any]) -> 'OptionEdit':
        """Build from a flat request like {'serial_id': 3, 'enabled': True}."""
        if 'serial_id' not in request:
            raise SchemaError("Edit request without a serial_id")
        changes = {k: v for k, v in request.items() if k != 'serial_id'}
        return cls(request['serial_id'], changes)


def _record_for(schema, serial_id: int) -> ConfigOption:
    record = schema.get_record(serial_id)
    if record is None:
        raise SchemaError("No such option", serial_id)
    return record


def _validate(schema, edit: OptionEdit) -> ConfigOption:
    record = _record_for(schema, edit.serial_id)
    unknown = [k for k in edit.changes if k not in EDITABLE_FIELDS]
    if unknown:
        raise SchemaError(f"Fields {', '.join(unknown)} cannot be edited", edit.serial_id)
    if 'value_type' in edit.changes:
        try:
            ValueType(edit.changes['value_type'])
        except ValueError:
            raise SchemaError(f"Unknown value type '{edit.changes['value_type']}'",
                              edit.serial_id)
    return record


def _merge(record: ConfigOption, changes: Dict[str, Any]) -> None:
    if 'value_type' in changes:
        record.value_type = ValueType(changes['value_type'])
    if 'enabled' in changes:
        record.enabled = bool(changes['enabled'])
    if 'value' in changes:
        record.value = coerce_value(record.value_type, changes['value'])
    record.dirty = (record.enabled, record.value) != (record.orig.enabled, record.orig.value)


def apply_edit(schema, serial_id: int, changes: Dict[str, Any]) -> Dict[int, bool]:
    """Edit one record and refresh everything after it.

    Returns the refresh delta: {serial_id: evaled} of records that changed.
    """
    return apply_edits(schema, [OptionEdit(serial_id, changes)])


def apply_edits(schema, edits: List[OptionEdit]) -> Dict[int, bool]:
    """Apply every edit of a batch, then run a single refresh.

    The batch is validated up front so a bad request leaves the schema
    untouched.
    """
    if not edits:
        return {}
    records = [_validate(schema, edit) for edit in edits]
    for record, edit in zip(records, edits):
        _merge(record, edit.changes)
    return schema.refresh_after(min(edit.serial_id for edit in edits))


def select_in_group(schema, serial_id: int) -> Dict[int, bool]:
    """Enable one member of an exclusive group and disable the others."""
    chosen = _record_for(schema, serial_id)
    if not chosen.group:
        raise SchemaError(f"{chosen.name} is not in an exclusive group", serial_id)

    batch = [OptionEdit(serial_id, {'enabled': True})]
    for record in schema.records():
        if (record is not chosen and record.enabled
                and record.group == chosen.group
                and record.section == chosen.section):
            batch.append(OptionEdit(record.serial_id, {'enabled': False}))
    return apply_edits(schema, batch)
