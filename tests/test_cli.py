"""Tests for the mcs-schema command line."""

import io
import json
import unittest
import sys
import os
import tempfile
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path
from unittest.mock import patch

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from src.configschema.main import load_schema, main


CONFIG = """\
// @section machine
#define FOO
//#define GATE
#if ENABLED(GATE)
  #define NEEDS_GATE
#endif
"""

ADV = """\
// @section motion
#if ENABLED(FOO)
  #define ADV_FOO
#endif
"""


class TestCommandLine(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.root = Path(self.tmp.name)
        self.config = self.root / 'Configuration.h'
        self.config.write_text(CONFIG, encoding='utf-8')
        self.adv = self.root / 'Configuration_adv.h'
        self.adv.write_text(ADV, encoding='utf-8')

    def tearDown(self):
        self.tmp.cleanup()

    def run_main(self, *args):
        out, err = io.StringIO(), io.StringIO()
        with patch.object(sys, 'argv', ['mcs-schema', *args]), \
                redirect_stdout(out), redirect_stderr(err):
            code = main()
        return code, out.getvalue(), err.getvalue()

    def test_summary_and_inactive(self):
        code, out, _ = self.run_main(str(self.config), '--inactive')
        self.assertEqual(code, 0)
        self.assertIn('3 options in 1 sections', out)
        self.assertIn('line 5: NEEDS_GATE  requires ENABLED(GATE)', out)

    def test_json_dump(self):
        code, out, _ = self.run_main(str(self.config), '--json')
        self.assertEqual(code, 0)
        data = json.loads(out)
        self.assertEqual(list(data), ['machine'])
        self.assertFalse(data['machine']['NEEDS_GATE']['evaled'])

    def test_advanced_report_counts_only_its_own_lines(self):
        code, out, _ = self.run_main(str(self.config), '--adv', str(self.adv))
        self.assertEqual(code, 0)
        self.assertIn('1 options in 1 sections', out)
        self.assertIn('motion', out)

    def test_marlin_directory(self):
        schema = load_schema(None, marlin_dir=self.root)
        self.assertTrue(schema.records_named('ADV_FOO')[0].evaled)

    def test_warnings_set_exit_code(self):
        broken = self.root / 'broken.h'
        broken.write_text('#define A\n#endif\n', encoding='utf-8')
        code, out, _ = self.run_main(str(broken))
        self.assertEqual(code, 1)
        self.assertIn('Warnings:', out)
        self.assertIn('line 2: #endif without a matching #if', out)

    def test_missing_file(self):
        code, _, err = self.run_main(str(self.root / 'missing.h'))
        self.assertEqual(code, 1)
        self.assertTrue(err.startswith('Error:'))

    def test_input_required(self):
        with self.assertRaises(SystemExit) as ctx:
            self.run_main()
        self.assertEqual(ctx.exception.code, 2)


if __name__ == '__main__':
    unittest.main()
