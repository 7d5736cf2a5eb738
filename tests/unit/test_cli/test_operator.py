# SPDX-License-Identifier: LGPL-3.0-or-later
import io
import unittest
from unittest.mock import patch

from rich.console import Console

from tmpl2vc.cli.operator import ConsoleOperator, is_yes, parse_choice


def _operator(answers: str):
    out = io.StringIO()
    console = Console(file=out, force_terminal=False, width=100)
    return ConsoleOperator(console=console, stream=io.StringIO(answers)), out


class TestAnswerParsing(unittest.TestCase):
    def test_is_yes(self):
        for a in ("y", "Y", "yes", " YES "):
            self.assertTrue(is_yes(a))
        for a in ("", "n", "no", "yep", "sure", None):
            self.assertFalse(is_yes(a))

    def test_parse_choice_by_index(self):
        self.assertEqual(parse_choice("2", ["tmpl-a", "tmpl-b"]), "tmpl-b")

    def test_parse_choice_by_name(self):
        self.assertEqual(parse_choice("tmpl-a", ["tmpl-a", "tmpl-b"]), "tmpl-a")

    def test_parse_choice_rejects_out_of_range(self):
        self.assertIsNone(parse_choice("0", ["tmpl-a"]))
        self.assertIsNone(parse_choice("3", ["tmpl-a", "tmpl-b"]))

    def test_parse_choice_rejects_unknown_and_empty(self):
        self.assertIsNone(parse_choice("tmpl-c", ["tmpl-a"]))
        self.assertIsNone(parse_choice("", ["tmpl-a"]))
        self.assertIsNone(parse_choice(None, ["tmpl-a"]))


class TestConsoleOperator(unittest.TestCase):
    def test_ask_strips(self):
        op, _out = _operator("  vc-lab-a  \n")
        self.assertEqual(op.ask("Source vCenter"), "vc-lab-a")

    def test_confirm_yes(self):
        op, out = _operator("y\n")
        self.assertTrue(op.confirm("Proceed with the migration?"))
        self.assertIn("[y/n]", out.getvalue())

    def test_confirm_anything_else_declines(self):
        op, _out = _operator("ok\n")
        self.assertFalse(op.confirm("Proceed with the migration?"))

    def test_confirm_empty_declines(self):
        op, _out = _operator("")
        self.assertFalse(op.confirm("Proceed with the migration?"))

    def test_choose_lists_options(self):
        op, out = _operator("1\n")
        choice = op.choose("Select the template to migrate", ["tmpl-app", "tmpl-web"])
        self.assertEqual(choice, "tmpl-app")
        text = out.getvalue()
        self.assertIn("tmpl-app", text)
        self.assertIn("tmpl-web", text)

    def test_choose_empty_selects_nothing(self):
        op, _out = _operator("\n")
        self.assertIsNone(op.choose("Select the template to migrate", ["tmpl-app"]))

    def test_summary_and_progress_render(self):
        op, out = _operator("")
        op.summary("Migration summary", {"Template": "tmpl-web", "Target folder": "Templates"})
        op.progress(2, 4, "Appliance exported")
        text = out.getvalue()
        self.assertIn("tmpl-web", text)
        self.assertIn("[2/4]", text)
        self.assertIn("Appliance exported", text)

    def test_success_and_error(self):
        op, out = _operator("")
        op.success("tmpl-web migrated")
        op.error("ImportRejected: rejected")
        text = out.getvalue()
        self.assertIn("tmpl-web migrated", text)
        self.assertIn("ImportRejected", text)


class TestClosedInput(unittest.TestCase):
    """Prompts read from the real stdin (no stream) after it hit end-of-file."""

    def _operator(self):
        out = io.StringIO()
        return ConsoleOperator(console=Console(file=out, force_terminal=False, width=100)), out

    def test_confirm_declines(self):
        op, _out = self._operator()
        with patch("sys.stdin", io.StringIO("")):
            self.assertFalse(op.confirm("Proceed with the migration?"))

    def test_choose_selects_nothing(self):
        op, _out = self._operator()
        with patch("sys.stdin", io.StringIO("")):
            self.assertIsNone(op.choose("Select the template to migrate", ["tmpl-web"]))

    def test_ask_returns_empty(self):
        op, _out = self._operator()
        with patch("sys.stdin", io.StringIO("")):
            self.assertEqual(op.ask("Source vCenter"), "")


if __name__ == "__main__":
    unittest.main()
