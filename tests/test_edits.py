"""Tests for the incremental update API."""

import unittest
import sys
import os
import textwrap
from unittest.mock import patch

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from src.configschema.edits import OptionEdit, SchemaError
from src.configschema.schema import ConfigSchema
from src.configschema.value_types import ValueType


def build(source: str) -> ConfigSchema:
    return ConfigSchema.from_text(textwrap.dedent(source))


CHAIN = """\
#define FOO
#if ENABLED(FOO)
  #define BAR 1
#endif
#if ENABLED(BAR)
  #define BAZ
#endif
"""


class TestApplyEdit(unittest.TestCase):

    def setUp(self):
        self.schema = ConfigSchema.from_text(CHAIN)
        self.foo, self.bar, self.baz = self.schema.records()

    def test_disable_returns_delta(self):
        delta = self.schema.apply_edit(1, {'enabled': False})
        self.assertEqual(delta, {2: False, 3: False})
        self.assertTrue(self.foo.dirty)
        self.assertEqual(self.foo.to_dict()['orig'], {'enabled': True, 'value': None})

    def test_edit_back_clears_dirty(self):
        self.schema.apply_edit(1, {'enabled': False})
        delta = self.schema.apply_edit(1, {'enabled': True})
        self.assertEqual(delta, {2: True, 3: True})
        self.assertFalse(self.foo.dirty)
        self.assertNotIn('orig', self.foo.to_dict())

    def test_earlier_records_untouched(self):
        self.foo.evaled = False
        delta = self.schema.apply_edit(2, {'value': '5'})
        self.assertFalse(self.foo.evaled)
        self.assertEqual(self.bar.value, 5)
        self.assertTrue(self.bar.dirty)
        # ENABLED() only accepts 1-like values
        self.assertEqual(delta, {3: False})

    def test_value_type_change_coerces(self):
        self.schema.apply_edit(2, {'value_type': 'float', 'value': '2'})
        self.assertEqual(self.bar.value_type, ValueType.FLOAT)
        self.assertEqual(self.bar.value, 2.0)

    def test_switch_value_dropped(self):
        self.schema.apply_edit(1, {'value': 'ignored'})
        self.assertIsNone(self.foo.value)
        self.assertFalse(self.foo.dirty)


class TestRejectedEdits(unittest.TestCase):

    def setUp(self):
        self.schema = ConfigSchema.from_text(CHAIN)

    def test_unknown_serial_id(self):
        with self.assertRaises(SchemaError) as ctx:
            self.schema.apply_edit(99, {'enabled': True})
        self.assertEqual(ctx.exception.serial_id, 99)
        self.assertTrue(str(ctx.exception).startswith('Schema error: option #99'))

    def test_undef_slot_has_no_record(self):
        schema = build("#define A\n#undef A\n")
        with self.assertRaises(SchemaError):
            schema.apply_edit(2, {'enabled': True})

    def test_field_not_editable(self):
        with self.assertRaises(SchemaError) as ctx:
            self.schema.apply_edit(2, {'name': 'OTHER'})
        self.assertIn('cannot be edited', str(ctx.exception))
        self.assertEqual(self.schema.get_record(2).name, 'BAR')

    def test_bad_value_type(self):
        with self.assertRaises(SchemaError):
            self.schema.apply_edit(2, {'value_type': 'bogus'})
        self.assertEqual(self.schema.get_record(2).value_type, ValueType.INT)

    def test_batch_is_all_or_nothing(self):
        with self.assertRaises(SchemaError):
            self.schema.apply_edits([OptionEdit(1, {'enabled': False}),
                                     OptionEdit(99, {'enabled': True})])
        self.assertTrue(self.schema.get_record(1).enabled)
        self.assertTrue(self.schema.get_record(3).evaled)


class TestBatches(unittest.TestCase):

    def test_single_refresh_from_earliest_edit(self):
        schema = ConfigSchema.from_text(CHAIN)
        with patch.object(schema, 'refresh_after', wraps=schema.refresh_after) as refresh:
            delta = schema.apply_edits([OptionEdit(3, {'enabled': False}),
                                        OptionEdit(1, {'enabled': False})])
        refresh.assert_called_once_with(1)
        self.assertEqual(delta, {2: False, 3: False})

    def test_empty_batch(self):
        schema = ConfigSchema.from_text(CHAIN)
        self.assertEqual(schema.apply_edits([]), {})

    def test_from_request(self):
        edit = OptionEdit.from_request({'serial_id': 3, 'enabled': True})
        self.assertEqual(edit, OptionEdit(3, {'enabled': True}))
        with self.assertRaises(SchemaError):
            OptionEdit.from_request({'enabled': True})


class TestSelectInGroup(unittest.TestCase):

    def test_exclusive_group(self):
        schema = build("""\
            #define DELTA
            //#define COREXY
            //#define MORGAN_SCARA
            #if ENABLED(COREXY)
              #define COREXY_OPTION
            #endif
        """)
        with patch.object(schema, 'refresh_after', wraps=schema.refresh_after) as refresh:
            delta = schema.select_in_group(2)
        refresh.assert_called_once_with(1)
        self.assertEqual([r.enabled for r in schema.records()[:3]], [False, True, False])
        self.assertEqual(delta, {4: True})

    def test_other_sections_left_alone(self):
        schema = build("""\
            // @section machine
            #define DELTA
            // @section motion
            //#define COREXY
            #define MORGAN_SCARA
        """)
        schema.select_in_group(2)
        delta_board, corexy, scara = schema.records()
        self.assertTrue(delta_board.enabled)
        self.assertTrue(corexy.enabled)
        self.assertFalse(scara.enabled)

    def test_duplicate_name_group(self):
        schema = build("#define OPT 1\n#define OPT 2\n")
        schema.select_in_group(2)
        self.assertEqual([r.enabled for r in schema.records()], [False, True])

    def test_not_in_group(self):
        schema = build("#define PLAIN\n")
        with self.assertRaises(SchemaError):
            schema.select_in_group(1)


if __name__ == '__main__':
    unittest.main()
