"""Tests for the basic / advanced schema workspace."""

import unittest
import sys
import os
import tempfile
import textwrap
from pathlib import Path

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from src.configschema.edits import SchemaError
from src.configschema.workspace import (
    CONDITIONALS_FILE, SPLIT_CONDITIONALS_FILES, ConfigWorkspace, advanced_document,
)


CONFIG = textwrap.dedent("""\
    #define FOO
    //#define BAR
""")

ADV = textwrap.dedent("""\
    #if ENABLED(FOO)
      #define ADV_FOO
    #endif
    #if ENABLED(BAR)
      #define ADV_BAR
    #endif
""")


def named(schema, name):
    return schema.records_named(name)[0]


class TestAdvancedDocument(unittest.TestCase):

    def test_prefix_and_offset(self):
        doc = advanced_document('#define A\nint x;\n', '#define COND\n', '#define ADV\n')
        self.assertEqual(doc['text'],
                         '// @section _\n#define A\n#define COND\n'
                         '\n// @section none\n#define ADV\n')
        self.assertEqual(doc['line_offset'], -5)

    def test_trailing_comment_does_not_hide_section(self):
        workspace = ConfigWorkspace('#define MOTHERBOARD BOARD_X     // the board\n',
                                    '#define ADV_OPT 1\n')
        adv_opt = named(workspace.advanced, 'ADV_OPT')
        self.assertEqual((adv_opt.section, adv_opt.line_start), ('none', 1))
        self.assertEqual(named(workspace.advanced, 'MOTHERBOARD').comment, 'the board')


class TestWorkspace(unittest.TestCase):

    def setUp(self):
        self.workspace = ConfigWorkspace(CONFIG, ADV)

    def test_prefix_records_are_read_only(self):
        advanced = self.workspace.advanced
        foo = named(advanced, 'FOO')
        self.assertEqual((foo.serial_id, foo.section), (1, '_'))
        self.assertFalse(foo.writable)
        adv_foo = named(advanced, 'ADV_FOO')
        self.assertTrue(adv_foo.writable)
        self.assertEqual(adv_foo.line_start, 2)
        self.assertEqual(adv_foo.section, 'none')

    def test_advanced_sees_basic_options(self):
        advanced = self.workspace.advanced
        self.assertTrue(named(advanced, 'ADV_FOO').evaled)
        self.assertFalse(named(advanced, 'ADV_BAR').evaled)

    def test_basic_edit_is_mirrored(self):
        delta = self.workspace.apply_edit(2, {'enabled': True})
        self.assertEqual(delta, {})
        self.assertTrue(named(self.workspace.basic, 'BAR').enabled)
        self.assertTrue(named(self.workspace.advanced, 'BAR').enabled)
        self.assertTrue(named(self.workspace.advanced, 'ADV_BAR').evaled)
        self.assertFalse(self.workspace.advanced_stale)

    def test_misaligned_prefix_marks_stale(self):
        config = textwrap.dedent("""\
            /*
            #define HIDDEN
            */
            #define FOO
            //#define BAR
        """)
        workspace = ConfigWorkspace(config, ADV)
        self.assertEqual(workspace.basic.records_named('HIDDEN'), [])
        self.assertEqual(named(workspace.advanced, 'HIDDEN').serial_id, 1)

        workspace.apply_edit(2, {'enabled': True})
        self.assertTrue(workspace.advanced_stale)
        self.assertFalse(named(workspace.advanced, 'ADV_BAR').evaled)

        workspace.reload()
        self.assertFalse(workspace.advanced_stale)

    def test_advanced_edit(self):
        delta = self.workspace.apply_edit(3, {'enabled': False},
                                          filename='Marlin/Configuration_adv.h')
        self.assertEqual(delta, {})
        self.assertFalse(named(self.workspace.advanced, 'ADV_FOO').enabled)
        self.assertTrue(named(self.workspace.basic, 'FOO').enabled)

    def test_advanced_edit_of_prefix_rejected(self):
        with self.assertRaises(SchemaError):
            self.workspace.apply_edit(1, {'enabled': False}, 'Configuration_adv.h')
        self.assertTrue(named(self.workspace.advanced, 'FOO').enabled)

    def test_schema_for(self):
        self.assertIs(self.workspace.schema_for('Configuration.h'), self.workspace.basic)
        self.assertIs(self.workspace.schema_for('/tmp/Configuration_adv.h'),
                      self.workspace.advanced)

    def test_no_advanced_file(self):
        workspace = ConfigWorkspace(CONFIG)
        self.assertIsNone(workspace.advanced)
        with self.assertRaises(SchemaError):
            workspace.schema_for('Configuration_adv.h')
        # Nothing to mirror onto
        workspace.apply_edit(2, {'enabled': True})
        self.assertFalse(workspace.advanced_stale)

    def test_reload_with_new_text(self):
        self.workspace.reload(config_text='#define NEW\n')
        self.assertEqual(named(self.workspace.basic, 'NEW').serial_id, 1)
        self.assertFalse(named(self.workspace.advanced, 'ADV_FOO').evaled)


class TestMarlinDirectory(unittest.TestCase):

    def write(self, root: Path, relative, text: str) -> None:
        path = root / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding='utf-8')

    def test_single_conditionals_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            self.write(root, 'Configuration.h', '//#define FOO\n')
            self.write(root, 'Configuration_adv.h',
                       '#if ENABLED(COND_X)\n  #define ADV_X\n#endif\n')
            self.write(root, CONDITIONALS_FILE, '#define COND_X\n')
            workspace = ConfigWorkspace.from_marlin_dir(root)
        self.assertTrue(named(workspace.advanced, 'ADV_X').evaled)
        self.assertEqual(workspace.basic.records_named('COND_X'), [])

    def test_split_conditionals_files(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            self.write(root, 'Configuration.h', '#define FOO\n')
            self.write(root, 'Configuration_adv.h', '#define ADV\n')
            self.write(root, SPLIT_CONDITIONALS_FILES[0], '#define AXES_COND\n')
            self.write(root, SPLIT_CONDITIONALS_FILES[2], '#define ETC_COND\n')
            workspace = ConfigWorkspace.from_marlin_dir(root)
        advanced = workspace.advanced
        self.assertEqual([r.name for r in advanced.records()],
                         ['FOO', 'AXES_COND', 'ETC_COND', 'ADV'])
        self.assertEqual(named(advanced, 'ADV').line_start, 1)

    def test_without_advanced_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            self.write(root, 'Configuration.h', '#define FOO\n')
            workspace = ConfigWorkspace.from_marlin_dir(str(root))
        self.assertIsNone(workspace.advanced)
        self.assertTrue(named(workspace.basic, 'FOO').evaled)


if __name__ == '__main__':
    unittest.main()
