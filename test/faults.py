"""
Faults module tests (payload access, rendering, trigger protocol).

Conventions
- Test method names follow CamelCase per project convention.
"""

from __future__ import annotations

import __main__
import io
import unittest
import warnings
from unittest import TestCase, mock

from rich.console import Console

from argbind import Command
from argbind.faults import (
    CommandException,
    CommandWarning,
    DeclarationError,
    DeprecatedFlagWarning,
    FaultCode,
    UnknownFlagError,
    ValidationError,
    trigger,
)


def render(renderable):
    console = Console(file=io.StringIO(), width=100, color_system=None)
    console.print(renderable)
    return console.file.getvalue()


class TestPayload(TestCase):

    def testOptionsAreReadOnly(self):
        fault = UnknownFlagError("unknown flag '--x'", flag="--x")
        with self.assertRaises(TypeError):
            fault.options["flag"] = "--y"

    def testOptionsReadableAsAttributes(self):
        fault = UnknownFlagError("unknown flag '--x'", flag="--x", hint="try --help")
        self.assertEqual(fault.flag, "--x")
        self.assertEqual(fault.hint, "try --help")
        with self.assertRaises(AttributeError):
            fault.missing

    def testMessageMustBeString(self):
        with self.assertRaises(TypeError):
            ValidationError(42)

    def testDeclarationErrorIsNotACommandFault(self):
        self.assertTrue(issubclass(DeclarationError, ValueError))
        self.assertFalse(issubclass(DeclarationError, CommandException))

    def testReplaceKeepsCause(self):
        fault = ValidationError("bad", code=FaultCode.DELEGATED_ERROR)
        fault.__cause__ = KeyError("x")
        clone = fault.__replace__(shell=False)
        self.assertIsNot(clone, fault)
        self.assertIs(clone.__cause__, fault.__cause__)
        self.assertEqual(clone.code, FaultCode.DELEGATED_ERROR)
        self.assertFalse(clone.shell)


class TestRendering(TestCase):

    def testHeaderMessageAndHint(self):
        fault = UnknownFlagError(
            "unknown flag '--x' for command 'tool'",
            title="unknown flag",
            code=FaultCode.UNKNOWN_FLAG,
            hint="run 'tool --help' to see the available flags",
        )
        output = render(fault)
        self.assertIn("[ argbind — 11201 | Unknown Flag ]", output)
        self.assertIn("unknown flag '--x' for command 'tool'", output)
        self.assertIn("→ run 'tool --help'", output)

    def testProgramFromCommandPath(self):
        root = Command("git")
        remote = Command("remote", root)
        fault = UnknownFlagError("unknown flag", title="unknown flag", code=FaultCode.UNKNOWN_FLAG, tool=remote)
        self.assertIn("[ git remote — 11201 |", render(fault))

    def testHostOverrides(self):
        fault = UnknownFlagError("unknown flag", title="unknown flag", code=FaultCode.UNKNOWN_FLAG)
        with mock.patch.object(__main__, "__codes__", {FaultCode.UNKNOWN_FLAG: "E-FLAG"}, create=True), \
                mock.patch.object(__main__, "__prog__", "mytool", create=True):
            self.assertEqual(FaultCode.UNKNOWN_FLAG.normalize(), "E-FLAG")
            self.assertIn("[ mytool — E-FLAG | Unknown Flag ]", render(fault))
        self.assertEqual(FaultCode.MISSING_VALUE.normalize(), "11304")

    def testFancyPanel(self):
        fault = UnknownFlagError("unknown flag", title="unknown flag", code=FaultCode.UNKNOWN_FLAG, fancy=True)
        output = render(fault)
        self.assertIn("╭", output)
        self.assertIn("unknown flag", output)

    def testWarningRendering(self):
        warning = DeprecatedFlagWarning("flag '--old' is deprecated", title="deprecated flag", code=FaultCode.DEPRECATED_FLAG)
        self.assertIn("[ argbind — 12101 | Deprecated Flag ]", render(warning))


class TestTrigger(TestCase):

    def testLibraryModeRaisesClone(self):
        fault = ValidationError("bad")
        with self.assertRaises(ValidationError) as context:
            trigger(fault, shell=False, extra=1)
        self.assertIsNot(context.exception, fault)
        self.assertEqual(context.exception.extra, 1)

    def testLibraryModeWarns(self):
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            trigger(CommandWarning("heads up"))
        self.assertEqual(len(caught), 1)
        self.assertIsInstance(caught[0].message, CommandWarning)

    def testShellModeExits(self):
        with mock.patch("argbind.faults.console", Console(file=io.StringIO(), color_system=None)) as console:
            with self.assertRaises(SystemExit) as context:
                trigger(ValidationError("bad value", title="invalid value"), shell=True)
        self.assertEqual(context.exception.code, 1)
        self.assertIn("bad value", console.file.getvalue())

    def testProtocolRequired(self):
        with self.assertRaises(TypeError):
            trigger(ValueError("not a fault"))


if __name__ == '__main__':
    unittest.main()
