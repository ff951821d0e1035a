"""
Tests for the command line interface
"""

import io
import os
import sys
import shutil
import tempfile
import unittest
from contextlib import redirect_stdout
from unittest import mock

# Add parent to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from powtoken import cli
from powtoken.crypto_utils import keccak256, mint_digest, to_hex
from powtoken.node import Node

ALICE = "0x" + "a1" * 20


def run_cli(*argv):
    """Run the CLI with the given arguments, returning (exit code, stdout)."""
    out = io.StringIO()
    with mock.patch.object(sys, 'argv', ['powtoken'] + list(argv)), redirect_stdout(out):
        code = cli.main()
    return code, out.getvalue()


class TestFormatting(unittest.TestCase):
    """Test amount rendering."""

    def test_format_units(self):
        self.assertEqual(cli.format_units(5000000000, 8), "50.00000000")
        self.assertEqual(cli.format_units(1, 8), "0.00000001")
        self.assertEqual(cli.format_units(348, 0), "348")


class TestCommands(unittest.TestCase):
    """Test CLI commands against a temporary data directory."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_init_and_info(self):
        code, out = run_cli('--data-dir', self.temp_dir, 'init', '--preset', 'fast')
        self.assertEqual(code, 0)
        self.assertIn("Fast Retarget Token", out)

        node = Node.open(self.temp_dir)
        self.assertEqual(node.engine.params.blocks_per_adjustment, 512)

        code, out = run_cli('--data-dir', self.temp_dir, 'info')
        self.assertEqual(code, 0)
        self.assertIn("Epoch: 0", out)
        self.assertIn("Mining reward: 50.00000000", out)

    def test_init_unknown_preset(self):
        code, out = run_cli('--data-dir', self.temp_dir, 'init', '--preset', 'turbo')
        self.assertEqual(code, 1)
        self.assertIn("Unknown preset", out)

    def test_init_max_target_override(self):
        run_cli('--data-dir', self.temp_dir, 'init', '--max-target', hex(2 ** 250))
        self.assertEqual(Node.open(self.temp_dir).engine.get_mining_target(), 2 ** 250)

    def test_init_bad_max_target(self):
        code, out = run_cli('--data-dir', self.temp_dir, 'init', '--max-target', 'zz')
        self.assertEqual(code, 1)
        self.assertIn("Invalid --max-target", out)

        # Below the preset's min_target
        code, out = run_cli('--data-dir', self.temp_dir, 'init', '--max-target', '0x10')
        self.assertEqual(code, 1)
        self.assertFalse(os.path.exists(os.path.join(self.temp_dir, Node.ENGINE_FILE)))

    def test_init_refuses_to_overwrite(self):
        run_cli('--data-dir', self.temp_dir, 'init')
        code, out = run_cli('--data-dir', self.temp_dir, 'init', '--preset', 'fast')
        self.assertEqual(code, 1)
        self.assertIn("already deployed", out)
        self.assertNotEqual(Node.open(self.temp_dir).engine.params.blocks_per_adjustment, 512)

        code, _ = run_cli('--data-dir', self.temp_dir, 'init', '--preset', 'fast', '--force')
        self.assertEqual(code, 0)
        self.assertEqual(Node.open(self.temp_dir).engine.params.blocks_per_adjustment, 512)

    def test_balance(self):
        run_cli('--data-dir', self.temp_dir, 'init')
        code, out = run_cli('--data-dir', self.temp_dir, 'balance', ALICE)
        self.assertEqual(code, 0)
        self.assertIn("0.00000000", out)

        code, _ = run_cli('--data-dir', self.temp_dir, 'balance', '0x1234')
        self.assertEqual(code, 1)


class TestDebugCommands(unittest.TestCase):
    """Test the digest and check helpers."""

    def setUp(self):
        self.challenge = keccak256(b"challenge")
        self.digest = mint_digest(self.challenge, ALICE, 99)

    def test_digest(self):
        code, out = run_cli('digest', to_hex(self.challenge), ALICE, '99')
        self.assertEqual(code, 0)
        self.assertEqual(out.strip(), to_hex(self.digest))

    def test_check(self):
        code, out = run_cli('check', to_hex(self.challenge), ALICE, '99',
                            to_hex(self.digest), hex(2 ** 256 - 1))
        self.assertEqual(code, 0)
        self.assertIn("valid", out)

        code, _ = run_cli('check', to_hex(self.challenge), ALICE, '100',
                          to_hex(self.digest), hex(2 ** 256 - 1))
        self.assertEqual(code, 1)

    def test_bad_input(self):
        code, _ = run_cli('digest', 'nothex', ALICE, '1')
        self.assertEqual(code, 1)


if __name__ == '__main__':
    unittest.main()
