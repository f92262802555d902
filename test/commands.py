"""
Commands module behavioral tests (walking, binding, validation, running).

Scope
- Validate subcommand descent and the positional/flag mixing rule.
- Validate binding of flags and positional arguments, unknown flags.
- Validate group rules (exclusive, together) and missing arguments.
- Validate run(): help short-circuit, actions, resets, deprecations, locking.
- Validate declarations, the command() factory and invoke().

Conventions
- Test method names follow CamelCase per project convention.
- Tests use the public API (Command, command, invoke, Flag, Argument, Kind).
"""

from __future__ import annotations

import contextlib
import io
import sys
import unittest
from concurrent.futures import ThreadPoolExecutor
from unittest import TestCase, mock

from argbind import Argument, Command, Context, Flag, GroupKind, Kind, Repository, command, invoke, tokenize
from argbind.faults import (
    DeclarationError,
    DeprecatedCommandWarning,
    DeprecatedFlagWarning,
    ExclusiveFlagsError,
    FaultCode,
    FormatError,
    ConstraintError,
    MissingValueError,
    MixedPositionalsError,
    TogetherFlagsError,
    UnknownFlagError,
)


def calculator():
    """
    calc [ sum | diff ] [ -h ] [ -s | -d ] x y
    """
    def operands():
        return [Argument("x", Kind.INTEGER, "first operand"), Argument("y", Kind.INTEGER, "second operand")]

    @command(
        arguments=operands(),
        exclusive=[[Flag("sum", "s", Kind.BOOL, "add"), Flag("diff", "d", Kind.BOOL, "subtract")]],
    )
    def calc(context):
        """do some basic arithmetic operations"""
        x, y = context.arguments["x"], context.arguments["y"]
        return x - y if context.flags["diff"] else x + y

    @calc.command(arguments=operands())
    def sum(context):
        """calculate sum of two integers"""
        return context.arguments["x"] + context.arguments["y"]

    @calc.command(arguments=operands())
    def diff(context):
        """calculate difference between two integers"""
        return context.arguments["x"] - context.arguments["y"]

    return calc


class TestWalker(TestCase):
    """Command.resolve(): subcommand descent."""

    def testDescendsIntoChildren(self):
        root = Command("root")
        build = Command("build", root)
        release = Command("release", build)
        command, repository = root.resolve(tokenize(["build", "release", "--fast"]))
        self.assertIs(command, release)
        self.assertEqual(repository.leading, ())
        self.assertIn("fast", repository.flags)

    def testStopsAtFirstUnknownToken(self):
        calc = calculator()
        command, repository = calc.resolve(tokenize(["sum", "4", "sum"]))
        self.assertIs(command, calc.children["sum"])
        self.assertEqual(repository.leading, ("4", "sum"))

    def testLeadingTokensWithFlagsRaise(self):
        calc = calculator()
        with self.assertRaises(MixedPositionalsError) as context:
            calc.resolve(tokenize(["10", "20", "--sum"]))
        fault = context.exception
        self.assertEqual(fault.code, FaultCode.MIXED_POSITIONALS)
        self.assertEqual(fault.leading, ("10", "20"))
        self.assertIs(fault.tool, calc)

    def testSubcommandPathWithFlagsIsLegal(self):
        calc = calculator()
        command, repository = calc.resolve(tokenize(["diff", "--help"]))
        self.assertIs(command, calc.children["diff"])
        self.assertEqual(repository.leading, ())


class TestBinder(TestCase):
    """Command.bind(): raw values onto flags and arguments."""

    def testFlagOnlySchema(self):
        tool = Command("tool", flags=[Flag("amount", "n", Kind.INT32)])
        tool.bind(tokenize(["--amount", "10"]))
        tool.validate()
        self.assertEqual(tool.flags["amount"].value, 10)

    def testArgumentsBindByPosition(self):
        tool = Command("tool", arguments=[Argument("x", Kind.INT32), Argument("y", Kind.INT32)])
        tool.bind(tokenize(["10", "20"]))
        self.assertEqual([argument.value for argument in tool.arguments], ["10", "20"])
        tool.validate()
        self.assertEqual([argument.value for argument in tool.arguments], [10, 20])

    def testShortAliasBindsTheSameFlag(self):
        tool = Command("tool", flags=[Flag("amount", "n", Kind.INT32)])
        tool.bind(tokenize(["-n", "7"]))
        self.assertEqual(tool.flags["amount"].value, "7")

    def testLeadingAndTrailingShareOneIndex(self):
        tool = Command("tool", arguments=[Argument("x"), Argument("y"), Argument("z")])
        tool.bind(Repository(("a",), {}, ("b", "c")))
        self.assertEqual([argument.value for argument in tool.arguments], ["a", "b", "c"])

    def testExcessPositionalsAreDropped(self):
        tool = Command("tool", arguments=[Argument("x")])
        with self.assertLogs("argbind.commands", "DEBUG") as logs:
            tool.bind(tokenize(["a", "b", "c"]))
        tool.validate()
        self.assertEqual(tool.arguments[0].value, "a")
        self.assertTrue(any("dropped excess positionals ['b', 'c']" in line for line in logs.output))

    def testUnknownFlagRaises(self):
        tool = Command("tool", flags=[Flag("amount", "n", Kind.INT32)])
        with self.assertRaises(UnknownFlagError) as context:
            tool.bind(tokenize(["--amout=1"]))
        fault = context.exception
        self.assertEqual(fault.flag, "--amout")
        self.assertEqual(fault.hint, "did you mean '--amount'?")
        self.assertIn("'tool'", fault.message)

    def testLongNameIsNotAShortAlias(self):
        tool = Command("tool", flags=[Flag("n")])
        with self.assertRaises(UnknownFlagError):
            tool.bind(tokenize(["-n", "1"]))

    def testShortAliasIsNotALongName(self):
        tool = Command("tool", flags=[Flag("amount", "n")])
        with self.assertRaises(UnknownFlagError):
            tool.bind(tokenize(["--n", "1"]))


class TestValidator(TestCase):
    """Command.validate(): coercion, groups and missing values."""

    def together(self):
        return Command("split", together=[[Flag("separator", "s"), Flag("separator-amount", "a", Kind.INT32)]])

    def testExclusiveGroupRejectsTwoMembers(self):
        calc = calculator()
        with self.assertRaises(ExclusiveFlagsError) as context:
            calc.run(["--sum=true", "--diff=true", "1", "2"])
        fault = context.exception
        self.assertIsInstance(fault, ConstraintError)
        self.assertEqual(fault.code, FaultCode.EXCLUSIVE_FLAGS)
        self.assertIs(fault.flag, calc.flags["diff"])
        self.assertEqual(fault.message, "flags --sum, --diff are mutually exclusive")

    def testExclusiveGroupAcceptsOneMember(self):
        calc = calculator()
        self.assertEqual(calc.run(["--diff=1", "5", "2"]), 3)
        self.assertEqual(calc.run(["--sum=1", "5", "2"]), 7)

    def testTogetherGroupRejectsPartialSet(self):
        split = self.together()
        for args in (["--separator", ","], ["-a", "2"]):
            with self.subTest(args=args), self.assertRaises(TogetherFlagsError):
                split.run(args)

    def testTogetherGroupAcceptsAllOrNothing(self):
        split = self.together()
        split.run(["--separator", ",", "--separator-amount", "2"])
        self.assertEqual(split.flags["separator-amount"].value, 2)
        split.run([])
        self.assertIsNone(split.flags["separator"].value)

    def testTogetherFaultNamesMissingFlags(self):
        with self.assertRaises(TogetherFlagsError) as context:
            self.together().run(["-s", ","])
        self.assertEqual(context.exception.missing, ["--separator-amount"])

    def testFormatErrorBeforeGroupRules(self):
        calc = calculator()
        with self.assertRaises(FormatError):
            calc.run(["--sum=yes", "--diff=true", "1", "2"])

    def testIntegerFlag(self):
        tool = Command("tool", flags=[Flag("amount", "n", Kind.INT32)])
        tool.run(["-n", "10"])
        self.assertEqual(tool.flags["amount"].value, 10)
        for raw in ("10.5", "abc", "2147483648"):
            with self.subTest(raw=raw), self.assertRaises(FormatError):
                tool.run(["--amount", raw])

    def testMissingArgument(self):
        calc = calculator()
        with self.assertRaises(MissingValueError) as context:
            calc.run(["--sum=1", "5"])
        fault = context.exception
        self.assertEqual(fault.message, "missing value for argument 'y'")
        self.assertIs(fault.argument, calc.arguments[1])

    def testGroupViolationBeforeMissingArgument(self):
        with self.assertRaises(ExclusiveFlagsError):
            calculator().run(["-s", "-d"])

    def testBareBoolFlagIsTrue(self):
        tool = Command("tool", flags=[Flag("verbose", "v", Kind.BOOL), Flag("quiet", "q", Kind.BOOL)])
        tool.run(["-vq"])
        self.assertIs(tool.flags["verbose"].value, True)
        self.assertIs(tool.flags["quiet"].value, True)

    def testUnsetFlagsAreLegal(self):
        tool = Command("tool", flags=[Flag("amount", "n", Kind.INT32)])
        self.assertIsNone(tool.run([]))
        self.assertIsNone(tool.flags["amount"].value)

    def testGroupCounters(self):
        calc = calculator()
        calc.run(["--sum=1", "1", "2"])
        exclusive, = (group for group in calc.groups.values() if group.kind is GroupKind.EXCLUSIVE)
        self.assertEqual(exclusive.met, 1)
        self.assertEqual(exclusive.id, "calc:2")

    def testValidateIsRepeatable(self):
        calc = calculator()
        calc.bind(tokenize(["--sum=1", "5", "2"]))
        calc.validate()
        calc.validate()
        self.assertIs(calc.flags["sum"].value, True)
        self.assertEqual([argument.value for argument in calc.arguments], [5, 2])
        self.assertTrue(calc.flags["sum"].bound)

    def testRepeatedValidateReportsTheRawValue(self):
        tool = Command("tool", flags=[Flag("amount", "n", Kind.INT32)])
        tool.bind(tokenize(["-n", "ten"]))
        for attempt in range(2):
            with self.subTest(attempt=attempt), self.assertRaises(FormatError) as context:
                tool.validate()
            self.assertIn("'ten'", context.exception.message)


class TestRun(TestCase):
    """Command.run(): the whole pipeline."""

    def testEndToEndIntegers(self):
        calc = calculator()
        self.assertEqual(calc.run(["sum", "10", "20"]), 30)
        self.assertEqual(calc.run(["diff", "10", "20"]), -10)
        self.assertEqual(calc.run(["10", "20"]), 30)

    def testContext(self):
        received = []
        tool = Command(
            "tool",
            flags=[Flag("amount", "n", Kind.INT32)],
            arguments=[Argument("path")],
            action=received.append,
        )
        tool.run(["-n", "3", "file.txt"])
        context, = received
        self.assertIsInstance(context, Context)
        self.assertIs(context.command, tool)
        self.assertEqual(context.flags, {"help": None, "amount": 3})
        self.assertEqual(context.arguments, {"path": "file.txt"})

    def testRunsAreIndependent(self):
        tool = Command("tool", flags=[Flag("amount", "n", Kind.INT32)], action=lambda context: context.flags["amount"])
        self.assertEqual(tool.run(["-n", "1"]), 1)
        self.assertIsNone(tool.run([]))
        self.assertEqual(tool.run(["--amount=2"]), 2)

    def testHelpShortCircuits(self):
        calls = []
        tool = Command("tool", descr="does things", arguments=[Argument("x", Kind.INT32)], action=calls.append)
        with contextlib.redirect_stdout(io.StringIO()) as stdout:
            self.assertIsNone(tool.run(["-h"]))
        self.assertEqual(calls, [])
        self.assertIn("usage: tool [ -h ] x", stdout.getvalue())
        self.assertIn("does things", stdout.getvalue())

    def testHelpForSubcommand(self):
        calc = calculator()
        with contextlib.redirect_stdout(io.StringIO()) as stdout:
            calc.run(["sum", "--help"])
        self.assertIn("usage: calc sum [ -h ] x y", stdout.getvalue())
        self.assertIn("calculate sum of two integers", stdout.getvalue())

    def testHelpIgnoresInvalidValues(self):
        tool = Command("tool", flags=[Flag("amount", "n", Kind.INT32)])
        with contextlib.redirect_stdout(io.StringIO()):
            self.assertIsNone(tool.run(["--amount=abc", "--help"]))

    def testFaultCarriesRuntimeOptions(self):
        calc = calculator()
        with self.assertRaises(MissingValueError) as context:
            calc.run(["sum", "1"])
        fault = context.exception
        self.assertIs(fault.tool, calc.children["sum"])
        self.assertFalse(fault.shell)

    def testWalkerFaultCarriesDescendedCommand(self):
        root = Command("git")
        remote = Command("remote", root, fancy=True, arguments=[Argument("name")])
        with self.assertRaises(MixedPositionalsError) as context:
            root.run(["remote", "origin", "--verbose"])
        fault = context.exception
        self.assertIs(fault.tool, remote)
        self.assertTrue(fault.fancy)
        self.assertEqual(fault.leading, ("origin",))

    def testDeprecatedFlagWarns(self):
        tool = Command("tool", flags=[Flag("old", deprecated=True), Flag("new")])
        with self.assertWarns(DeprecatedFlagWarning) as context:
            tool.run(["--old", "x"])
        self.assertEqual(context.warning.code, FaultCode.DEPRECATED_FLAG)
        self.assertEqual(context.filename, __file__)

    def testDeprecatedCommandWarns(self):
        root = Command("root")
        old = Command("old", root, deprecated=True, action=lambda context: "done")
        with self.assertWarns(DeprecatedCommandWarning):
            self.assertEqual(root.run(["old"]), "done")
        self.assertTrue(old.deprecated)

    def testShellModePrintsAndExits(self):
        tool = Command("tool", shell=True)
        with contextlib.redirect_stderr(io.StringIO()) as stderr, self.assertRaises(SystemExit) as context:
            tool.run(["--nope"])
        self.assertEqual(context.exception.code, 1)
        self.assertIn("unknown flag '--nope' for command 'tool'", stderr.getvalue())
        self.assertIn("Unknown Flag", stderr.getvalue())

    def testShellModePrintsWarnings(self):
        tool = Command("tool", shell=True, deprecated=True)
        with contextlib.redirect_stderr(io.StringIO()) as stderr:
            tool.run([])
        self.assertIn("command 'tool' is deprecated", stderr.getvalue())

    def testConcurrentRunsAreSerialized(self):
        tool = Command(
            "tool",
            flags=[Flag("amount", "n", Kind.INT64)],
            arguments=[Argument("x", Kind.INT64)],
            action=lambda context: (context.flags["amount"], context.arguments["x"]),
        )

        def work(index):
            return tool.run(["-n", str(index), str(index * 2)])

        with ThreadPoolExecutor(8) as executor:
            results = list(executor.map(work, range(200)))
        self.assertEqual(results, [(index, index * 2) for index in range(200)])

    def testTreeSharesOneLock(self):
        calc = calculator()
        self.assertIs(calc.children["sum"].lock, calc.lock)


class TestDeclarations(TestCase):
    """Schema-building mistakes raise DeclarationError."""

    def testDuplicateLongName(self):
        with self.assertRaises(DeclarationError):
            Command("tool", flags=[Flag("amount"), Flag("amount")])

    def testDuplicateShortAlias(self):
        with self.assertRaises(DeclarationError):
            Command("tool", flags=[Flag("amount", "n")], exclusive=[[Flag("number", "n")]])

    def testBuiltinHelpIsReserved(self):
        with self.assertRaises(DeclarationError):
            Command("tool", flags=[Flag("help")])
        with self.assertRaises(DeclarationError):
            Command("tool", flags=[Flag("host", "h")])

    def testDuplicateArgument(self):
        with self.assertRaises(DeclarationError):
            Command("tool", arguments=[Argument("x"), Argument("x")])

    def testDuplicateChild(self):
        root = Command("root")
        Command("sub", root)
        with self.assertRaises(DeclarationError):
            Command("sub", root)

    def testFailedChildIsNotAttached(self):
        root = Command("root")
        with self.assertRaises(DeclarationError):
            Command("sub", root, flags=[Flag("amount"), Flag("amount")])
        self.assertNotIn("sub", root.children)
        sub = Command("sub", root)
        self.assertIs(root.children["sub"], sub)

    def testFlagOnTwoCommands(self):
        flag = Flag("amount")
        Command("one", flags=[flag])
        with self.assertRaises(DeclarationError):
            Command("two", flags=[flag])

    def testArgumentOnTwoCommands(self):
        argument = Argument("x")
        Command("one", arguments=[argument])
        with self.assertRaises(DeclarationError):
            Command("two", arguments=[argument])

    def testFailedGroupRegistersNothing(self):
        tool = Command("tool")
        with self.assertRaises(DeclarationError):
            tool.add_exclusive(Flag("a", "a"), Flag("b", "a"))
        self.assertEqual(set(tool.flags), {"help"})
        self.assertEqual(len(tool.groups), 1)

    def testEmptyGroupRejected(self):
        with self.assertRaises(DeclarationError):
            Command("tool", together=[[]])

    def testNonFlagRejected(self):
        with self.assertRaises(TypeError):
            Command("tool", flags=["--amount"])

    def testActionMustBeCallable(self):
        with self.assertRaises(DeclarationError):
            Command("tool", action="run")
        tool = Command("tool")
        with self.assertRaises(DeclarationError):
            tool.on_action(42)

    def testActionCannotBeOverridden(self):
        tool = Command("tool")

        @tool.on_action
        def first(context):
            pass

        self.assertIs(tool.action, first)
        with self.assertRaises(DeclarationError):
            tool.on_action(print)

    def testInvalidCommandNames(self):
        for name in ("", "-tool", "two words"):
            with self.subTest(name=name), self.assertRaises(DeclarationError):
                Command(name)

    def testFluentComposition(self):
        tool = (
            Command("tool")
            .add_flags(Flag("verbose", "v", Kind.BOOL))
            .add_exclusive(Flag("json"), Flag("yaml"))
            .add_together(Flag("user", "u"), Flag("password", "p"))
            .add_arguments(Argument("path"))
        )
        self.assertEqual(tool.usage, "tool [ -h ] [ -v ] [ --json | --yaml ] [ -u -p ] path")
        self.assertEqual(list(tool.groups), ["tool:1", "tool:2", "tool:3", "tool:4"])
        self.assertIs(tool.flags["json"].group.kind, GroupKind.EXCLUSIVE)
        self.assertIs(tool.shorts["p"], tool.flags["password"])

    def testRuntimeOptionsInherit(self):
        root = Command("root", shell=True, colorful=True)
        child = Command("child", root, colorful=False)
        self.assertTrue(child.shell)
        self.assertFalse(child.colorful)
        self.assertFalse(child.fancy)
        self.assertEqual(child.path, (root, child))
        self.assertIs(child.root, root)


class TestFactory(TestCase):
    """command() factory, usage and invoke()."""

    def testDecoratorDefaults(self):
        @command
        def tool(context):
            """tool description"""

        self.assertIsInstance(tool, Command)
        self.assertEqual(tool.name, "tool")
        self.assertEqual(tool.descr, "tool description")
        self.assertIsNotNone(tool.action)

    def testByName(self):
        tool = command("tool", descr="a tool")
        self.assertEqual((tool.name, tool.descr, tool.action), ("tool", "a tool", None))

    def testChildFactory(self):
        root = command("root")
        child = root.command("child")
        self.assertIs(root.children["child"], child)
        self.assertIs(child.parent, root)

    def testUsage(self):
        self.assertEqual(calculator().usage, "calc [ sum | diff ] [ -h ] [ -s | -d ] x y")

    def testInvokeWithString(self):
        self.assertEqual(invoke(calculator(), "diff 7 2"), 5)

    def testInvokeWithList(self):
        self.assertEqual(invoke(calculator(), ["sum", "7", "2"]), 9)

    def testInvokeReadsArgv(self):
        with mock.patch.object(sys, "argv", ["calc", "sum", "1", "1"]):
            self.assertEqual(invoke(calculator()), 2)

    def testInvokeWrapsCallables(self):
        def tool(context):
            return context.arguments

        self.assertEqual(invoke(tool, []), {})

    def testInvokeRejectsBadPrompts(self):
        with self.assertRaises(TypeError):
            invoke(calculator(), ["sum", 1, 2])
        with self.assertRaises(TypeError):
            invoke(calculator(), 42)
        with self.assertRaises(TypeError):
            invoke(42)


if __name__ == '__main__':
    unittest.main()
