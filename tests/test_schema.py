"""Tests for the schema builder, queries and serialization."""

import json
import unittest
import sys
import os
import textwrap

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from src.configschema.config import SchemaConfig
from src.configschema.schema import (
    ConfigSchema, IntegrityWarning, accept_options, implied_requirements, parse_units,
)
from src.configschema.value_types import ValueType, HOME_DIR_OPTIONS


def build(source: str) -> ConfigSchema:
    return ConfigSchema.from_text(textwrap.dedent(source))


def evaled_by_sid(schema: ConfigSchema):
    return {r.serial_id: r.evaled for r in schema.records()}


# ---------------------------------------------------------------------------
# Building
# ---------------------------------------------------------------------------

class TestBuild(unittest.TestCase):

    def test_plain_defines(self):
        schema = build("""\
            #define FOO
            #define BAR 5
        """)
        foo, bar = schema.records()
        self.assertEqual((foo.serial_id, foo.value_type, foo.enabled), (1, ValueType.SWITCH, True))
        self.assertEqual((bar.serial_id, bar.value_type, bar.value), (2, ValueType.INT, 5))
        self.assertIsNone(foo.requires)
        self.assertIsNone(bar.requires)
        self.assertTrue(foo.evaled)
        self.assertTrue(bar.evaled)

    def test_requirement_on_missing_option(self):
        schema = build("""\
            #if ENABLED(FOO)
              #define BAR 1
            #endif
        """)
        bar = schema.records_named('BAR')[0]
        self.assertEqual(bar.requires, 'ENABLED(FOO)')
        self.assertEqual(bar.depth, 1)
        self.assertFalse(bar.evaled)

    def test_undef_stamps_serial_id(self):
        schema = build("""\
            #define FOO
            #undef FOO
            #define BAZ 1
        """)
        foo = schema.records_named('FOO')[0]
        baz = schema.records_named('BAZ')[0]
        self.assertEqual(foo.undef, 2)
        self.assertIsNone(schema.get_record(2))
        self.assertEqual(baz.serial_id, 3)
        self.assertFalse(schema.is_enabled_before('FOO', baz.serial_id))
        self.assertTrue(foo.enabled)

    def test_adjacent_duplicates_share_group(self):
        schema = build("""\
            #define OPT A
            #if COND
              #define OPT B
            #endif
        """)
        entry = schema.by_section['none']['OPT']
        self.assertIsInstance(entry, list)
        self.assertEqual([r.serial_id for r in entry], [1, 2])
        self.assertEqual([r.group for r in entry], ['opt', 'opt'])

    def test_separated_duplicates_have_no_group(self):
        schema = build("""\
            #define OPT 1
            #define OTHER
            #define OPT 2
        """)
        entry = schema.by_section['none']['OPT']
        self.assertEqual([r.value for r in entry], [1, 2])
        self.assertEqual([r.group for r in entry], [None, None])

    def test_exclusive_group_from_config(self):
        schema = build("#define DELTA\n//#define COREXY\n")
        self.assertEqual([r.group for r in schema.records()], ['kinematic', 'kinematic'])

    def test_ignored_names_take_no_serial_id(self):
        schema = build("""\
            #define CONFIGURATION_H_VERSION 02010200
            #define A
        """)
        self.assertEqual(schema.records_named('CONFIGURATION_H_VERSION'), [])
        self.assertEqual(schema.records_named('A')[0].serial_id, 1)

    def test_section_order(self):
        schema = build("""\
            // @section motion
            #define A
            // @section machine
            #define B
            // @section zzz
            #define C
        """)
        self.assertEqual(list(schema.by_section), ['machine', 'motion', 'zzz'])
        self.assertEqual(schema.records_named('A')[0].section, 'motion')

    def test_serial_ids_follow_document_order(self):
        schema = build("""\
            #define A
            #if ENABLED(A)
              #define B
            #else
              #define C
            #endif
            #undef A
            #define D
        """)
        records = schema.records()
        self.assertEqual([r.name for r in records], ['A', 'B', 'C', 'D'])
        self.assertEqual([r.serial_id for r in records], [1, 2, 3, 5])
        self.assertEqual([r.line_start for r in records], [1, 3, 5, 8])


class TestComments(unittest.TestCase):

    def test_eol_comment_becomes_notes(self):
        schema = build("""\
            // Maximum speed
            #define MAX_SPEED 300          // (mm/s) per axis
        """)
        record = schema.records_named('MAX_SPEED')[0]
        self.assertEqual(record.comment, 'Maximum speed')
        self.assertEqual(record.notes, '(mm/s) per axis')
        self.assertEqual(record.units, 'mm/s')

    def test_eol_comment_alone_is_the_comment(self):
        schema = build("#define TEMP 200     // (°C) target\n")
        record = schema.records_named('TEMP')[0]
        self.assertEqual(record.comment, '(°C) target')
        self.assertIsNone(record.notes)
        self.assertEqual(record.units, '°C')

    def test_options_kept_when_value_listed(self):
        schema = build("""\
            // :[0, 1, 2]
            #define A 1
            // :[0, 1, 2]
            #define B 5
        """)
        self.assertEqual(schema.records_named('A')[0].options, '[0, 1, 2]')
        self.assertIsNone(schema.records_named('B')[0].options)

    def test_home_dir_options(self):
        schema = build("#define X_HOME_DIR -1\n")
        record = schema.records_named('X_HOME_DIR')[0]
        self.assertEqual(record.value_type, ValueType.DIR)
        self.assertEqual(record.options, HOME_DIR_OPTIONS)


class TestIntegrityWarnings(unittest.TestCase):

    def test_stray_endif(self):
        schema = build("""\
            #endif
            #define A
        """)
        self.assertEqual(len(schema.warnings), 1)
        warning = schema.warnings[0]
        self.assertEqual((warning.line, warning.directive), (1, '#endif'))
        self.assertEqual(str(warning), 'line 1: #endif without a matching #if')
        self.assertTrue(schema.records_named('A')[0].evaled)

    def test_stray_else(self):
        schema = build("#else\n")
        self.assertEqual(schema.warnings[0].message, '#else without a matching #if')

    def test_unterminated_if(self):
        schema = build("""\
            #if ENABLED(A)
            #define B
        """)
        self.assertEqual(schema.warnings,
                         [IntegrityWarning(3, '#endif',
                                           '1 unterminated #if block(s) at end of file')])

    def test_balanced_document_has_no_warnings(self):
        schema = build("#if 1\n#define A\n#endif\n")
        self.assertEqual(schema.warnings, [])


class TestUndef(unittest.TestCase):

    def test_unreachable_undef_is_ignored(self):
        schema = build("""\
            #define FOO
            //#define GATE
            #if ENABLED(GATE)
              #undef FOO
            #endif
            #define AFTER
        """)
        self.assertIsNone(schema.records_named('FOO')[0].undef)
        self.assertTrue(schema.is_enabled('FOO'))
        self.assertEqual(schema.records_named('AFTER')[0].serial_id, 4)

    def test_first_stamp_wins(self):
        schema = build("#define FOO\n#undef FOO\n#undef FOO\n")
        self.assertEqual(schema.records_named('FOO')[0].undef, 2)

    def test_redefine_after_undef(self):
        schema = build("#define FOO 1\n#undef FOO\n#define FOO 2\n")
        first, second = schema.records_named('FOO')
        self.assertEqual(first.undef, 2)
        self.assertIsNone(second.undef)
        self.assertIsNone(schema.value_before('FOO', 3))
        self.assertEqual(schema.value_before('FOO', 4), 2)

    def test_undef_follows_edited_guard(self):
        source = """\
            #define A
            //#define B
            #if ENABLED(B)
              #undef A
            #endif
            #if ENABLED(A)
              #define C
            #endif
        """
        schema = build(source)
        a, c = schema.records_named('A')[0], schema.records_named('C')[0]
        self.assertIsNone(a.undef)
        self.assertTrue(c.evaled)

        self.assertEqual(schema.apply_edit(2, {'enabled': True}), {4: False})
        self.assertEqual(a.undef, 3)
        self.assertFalse(c.evaled)
        fresh = build(source.replace('//#define B', '#define B'))
        self.assertEqual(fresh.records_named('A')[0].undef, 3)
        self.assertFalse(fresh.records_named('C')[0].evaled)

        self.assertEqual(schema.apply_edit(2, {'enabled': False}), {4: True})
        self.assertIsNone(a.undef)
        self.assertTrue(c.evaled)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

class TestQueries(unittest.TestCase):

    def setUp(self):
        self.schema = build("""\
            #define A 1
            //#define B 2
            #define C 3
            #define D
        """)

    def test_get_record(self):
        self.assertEqual(self.schema.get_record(2).name, 'B')
        self.assertIsNone(self.schema.get_record(0))
        self.assertIsNone(self.schema.get_record(99))

    def test_first_and_last_item(self):
        is_int = lambda r: r.value_type is ValueType.INT
        self.assertEqual(self.schema.first_item(is_int).name, 'A')
        self.assertEqual(self.schema.last_item(is_int).name, 'C')
        self.assertEqual(self.schema.last_item(is_int, before=3).name, 'B')
        self.assertIsNone(self.schema.first_item(lambda r: False))

    def test_get_and_count_items(self):
        everything = lambda r: True
        self.assertEqual(self.schema.count_items(everything), 4)
        self.assertEqual(self.schema.count_items(everything, limit=2), 2)
        self.assertEqual([r.name for r in self.schema.get_items(everything, before=3)],
                         ['A', 'B'])

    def test_items_with_name(self):
        self.assertIsNone(self.schema.first_item_with_name('C', before=3))
        self.assertEqual(self.schema.first_item_with_name('C').serial_id, 3)
        self.assertEqual(self.schema.last_item_with_name('A', before=2).value, 1)

    def test_value_before(self):
        self.assertIsNone(self.schema.value_before('C', 3))
        self.assertEqual(self.schema.value_before('C'), 3)
        self.assertIsNone(self.schema.value_before('MISSING'))

    def test_is_enabled(self):
        self.assertTrue(self.schema.is_enabled('A'))
        self.assertFalse(self.schema.is_enabled('B'))
        self.assertFalse(self.schema.is_enabled_before('D', 4))
        self.assertTrue(self.schema.is_enabled_before('D', 5))


# ---------------------------------------------------------------------------
# Refresh and ordering
# ---------------------------------------------------------------------------

class RecordingSchema(ConfigSchema):
    """Remembers every (before, serial_id) pair the evaluator looked at."""

    def __init__(self, config=None):
        super().__init__(config)
        self.seen = []

    def occurrences_before(self, name, before):
        found = super().occurrences_before(name, before)
        self.seen.extend((before, r.serial_id) for r in found)
        return found

    def records_before(self, before):
        found = super().records_before(before)
        self.seen.extend((before, r.serial_id) for r in found)
        return found


ORDERING_DOC = """\
#define EXTRUDERS 2
#define A
#if ENABLED(A) && EXTRUDERS > 1
  #define B
#endif
#if HAS_TRINAMIC_CONFIG
  #define C
#endif
#define A
"""


class TestRefresh(unittest.TestCase):

    def test_lookups_only_see_earlier_records(self):
        schema = RecordingSchema.from_text(ORDERING_DOC)
        self.assertTrue(schema.seen)
        for before, serial_id in schema.seen:
            self.assertLess(serial_id, before)
        self.assertTrue(schema.records_named('B')[0].evaled)
        self.assertFalse(schema.records_named('C')[0].evaled)

    def test_refresh_all_is_idempotent(self):
        schema = ConfigSchema.from_text(ORDERING_DOC)
        first = evaled_by_sid(schema)
        schema.refresh_all()
        self.assertEqual(evaled_by_sid(schema), first)

    def test_refresh_after_reports_changes_only(self):
        schema = ConfigSchema.from_text(ORDERING_DOC)
        schema.records_named('A')[0].enabled = False
        self.assertEqual(schema.refresh_after(2), {3: False})
        self.assertEqual(schema.refresh_after(2), {})


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

class TestSerialization(unittest.TestCase):

    SOURCE = """\
        // @section machine
        #define MOTHERBOARD BOARD_RAMPS_14_EFB
        //#define GATE
        #if ENABLED(GATE)
          #define OPT 1
          #define OPT 2
        #endif
        #define FOO
        #undef FOO
        // @section extruder
        #if ENABLED(FOO) || MB(RAMPS_14_EFB)
          #define EXTRA
        #endif
    """

    def test_round_trip_keeps_evaled(self):
        schema = build(self.SOURCE)
        clone = ConfigSchema.from_data(schema.to_data())
        for record in clone.records():
            record.evaled = None
        clone.refresh_all()
        self.assertEqual(evaled_by_sid(clone), evaled_by_sid(schema))
        self.assertIsInstance(clone.by_section['machine']['OPT'], list)
        self.assertEqual(clone.records_named('FOO')[0].undef, 6)

    def test_record_dict_fields(self):
        schema = build(self.SOURCE)
        data = schema.to_data()
        board = data['machine']['MOTHERBOARD']
        self.assertEqual(board['sid'], 1)
        self.assertEqual(board['type'], 'enum')
        self.assertEqual(board['value'], 'BOARD_RAMPS_14_EFB')
        self.assertNotIn('requires', board)
        self.assertNotIn('dirty', board)
        extra = data['extruder']['EXTRA']
        self.assertEqual(extra['requires'], 'ENABLED(FOO) || MB(RAMPS_14_EFB)')
        self.assertTrue(extra['evaled'])

    def test_to_json(self):
        schema = build(self.SOURCE)
        self.assertEqual(json.loads(schema.to_json(indent=2)), schema.to_data())


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

class TestImpliedRequirements(unittest.TestCase):

    def test_axis_names(self):
        self.assertEqual(implied_requirements('X_MIN_POS'), ['HAS_AXIS(X)'])
        self.assertEqual(implied_requirements('INVERT_Y_DIR'), ['HAS_AXIS(Y)'])
        self.assertEqual(implied_requirements('DISABLE_X'), ['HAS_AXIS(X)'])
        self.assertEqual(implied_requirements('Z2_DRIVER_TYPE'), [])

    def test_extruder_and_heater_names(self):
        self.assertEqual(implied_requirements('E1_DRIVER_TYPE'), ['HAS_EAXIS(1)'])
        self.assertEqual(implied_requirements('HEATER_1_MAXTEMP'),
                         ['HAS_EAXIS(1)', 'HAS_SENSOR(1)'])
        self.assertEqual(implied_requirements('HOTEND0_BETA'), ['HAS_SENSOR(0)'])
        self.assertEqual(implied_requirements('BED_BETA'), ['HAS_SENSOR(BED)'])

    def test_serial_names(self):
        self.assertEqual(implied_requirements('BAUDRATE_2'), ['HAS_SERIAL(2)'])
        self.assertEqual(implied_requirements('SERIAL_PORT_2'), [])
        self.assertEqual(implied_requirements('SERIAL_PORT_3'), ['HAS_SERIAL(2)'])

    def test_other_names(self):
        self.assertEqual(implied_requirements('THERMOCOUPLE_MAX_ERRORS'), ['HAS_MAX_TC()'])
        self.assertEqual(implied_requirements('MOTHERBOARD'), [])

    def test_axis_names_follow_config(self):
        config = SchemaConfig(axis_names=list('XYZ'))
        self.assertEqual(implied_requirements('I_MIN_POS', config), [])
        self.assertEqual(implied_requirements('I_MIN_POS'), ['HAS_AXIS(I)'])

    def test_combined_with_conditions(self):
        schema = build("""\
            #if ENABLED(FEATURE) || EXTRUDERS > 1
              #define Y_HOME_DIR -1
            #endif
        """)
        self.assertEqual(schema.records_named('Y_HOME_DIR')[0].requires,
                         'HAS_AXIS(Y) && (ENABLED(FEATURE) || EXTRUDERS > 1)')


class TestOptionHelpers(unittest.TestCase):

    def test_parse_units(self):
        self.assertEqual(parse_units('(mm/s) Max speed'), 'mm/s')
        self.assertEqual(parse_units('(s) delay'), 'seconds')
        self.assertEqual(parse_units('(sec)'), 'seconds')
        self.assertIsNone(parse_units('no units'))
        self.assertIsNone(parse_units(None))

    def test_accept_options_lists(self):
        self.assertEqual(accept_options('[0, 1, 2]', 1), '[0, 1, 2]')
        self.assertIsNone(accept_options('[0, 1, 2]', 5))
        self.assertEqual(accept_options('[[1, "one"], [2, "two"]]', 2),
                         '[[1, "one"], [2, "two"]]')

    def test_accept_options_python_literal(self):
        table = "{ 'A':'First', 'B':'Second' }"
        self.assertEqual(accept_options(table, 'B'), table)
        self.assertIsNone(accept_options(table, 'C'))

    def test_accept_options_rejects_bad_input(self):
        self.assertIsNone(accept_options('not a list', 1))
        self.assertIsNone(accept_options(None, 1))
        self.assertIsNone(accept_options('[1]', None))


if __name__ == '__main__':
    unittest.main()
