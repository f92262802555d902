"""
Argbind command layer: declare command trees, bind and validate, run.

What this module provides
- Command: the declared shape of one command (flags, groups, positional
  arguments, subcommands, action) plus the pipeline that runs it:
  • resolve(): descend into subcommands by consuming leading tokens.
  • bind(): map a Repository onto the declared flags and arguments.
  • validate(): coerce, run custom validators, enforce group rules.
  • run(): tokenize → resolve → reset → bind → help? → validate → action.
- Context: read-only typed values handed to the action.
- command(...): create a Command directly or as a decorator on its action.
- invoke(command, prompt): run from sys.argv, a shell-like string or a list.

Core ideas
- Declaration mistakes are programmer errors and raise DeclarationError
  while the tree is built; user input problems are CommandException
  subclasses surfaced through trigger() when running.
- Friendly diagnostics: messages name the flag/argument/command involved and
  carry a hint (close-match suggestions for unknown flags).
- Every command owns a built-in --help/-h flag; when given, help is printed
  and nothing is validated or executed.

Quick start
    from argbind import Argument, Flag, Kind, command, invoke

    @command(
        arguments=[Argument("x", Kind.INTEGER), Argument("y", Kind.INTEGER)],
        exclusive=[[Flag("sum", "s", Kind.BOOL), Flag("diff", "d", Kind.BOOL)]],
    )
    def calc(context):
        x, y = context.arguments["x"], context.arguments["y"]
        return x - y if context.flags["diff"] else x + y

    if __name__ == "__main__":
        print(invoke(calc))
"""
import builtins
import difflib
import inspect
import logging
import re
import shlex
import sys
import threading
from collections import defaultdict
from collections.abc import Iterable

from rich.box import ROUNDED
from rich.console import Console, Group as Renderables
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .arguments import Argument, Flag
from .faults import *
from .groups import Group, GroupKind
from .kinds import Kind
from .tokens import tokenize
from .utils import *

logger = logging.getLogger(__name__)

_NAME = re.compile(r"[^\s-]\S*")


class CommandType(type):
    """
    Metaclass for Command: __typename__, mirrored read-only fields and repr.
    """
    __introspectable__ = ()
    __displayable__ = Unset

    def __new__(cls, name, bases, namespace, **options):
        self = super().__new__(
            cls,
            name,
            bases,
            namespace | {
                "__typename__": name.lower(),
            } | {
                name: mirror(name) for name in namespace.get("__introspectable__", ())
            },
        )

        @rename("__repr__")
        def __repr__(self):
            return "%s(%s)" % (
                type(self).__typename__,
                ", ".join("%s=%r" % pair for pair in self.__rich_repr__())
            )
        self.__repr__ = __repr__

        @rename("__rich_repr__")
        def __rich_repr__(self):
            for name in coalesce(type(self).__displayable__, type(self).__introspectable__):
                object = getattr(self, name)
                # parent/children would recurse through the whole tree
                if isinstance(object, Command):
                    object = object.name
                elif isinstance(object, dict) and name == "children":
                    object = list(object)
                yield name, object
        self.__rich_repr__ = __rich_repr__

        return self


def _attach_to_parent(self, parent):
    """
    Register this command under its parent, enforcing unique names.
    """
    if getattr(parent, "_children", {}).setdefault(name := self.name, self) is self:
        return
    raise DeclarationError(f"{type(self).__typename__} {parent.name!r} subcommand name {name!r} is already in use")


def _spell(flag):
    return "-" + flag.short if flag.short else flag.label


class Context:
    """
    Read-only view of one successful run, handed to the action.

    - command: the resolved (innermost) Command.
    - flags: long name → typed value, or None when the flag was not given.
    - arguments: name → typed value.
    """

    command = mirror("command")
    flags = mirror("flags")
    arguments = mirror("arguments")

    def __init__(self, command, /):
        self._command = command
        self._flags = {name: flag.value for name, flag in command._flags.items()}
        self._arguments = {argument.name: argument.value for argument in command._arguments}

    def __repr__(self):
        return "context(command=%r, flags=%r, arguments=%r)" % (self._command.name, self._flags, self._arguments)


class Command(metaclass=CommandType):
    """
    Declared shape of one command and the pipeline that runs it.

    Responsibilities
    - Schema: flags by long name and short alias, flag groups, ordered
      positional arguments, named subcommands, optional action.
    - Walking: resolve() picks the innermost subcommand named by leading tokens.
    - Binding and validation: bind() and validate() fill and check the schema.
    - Rendering: usage line and rich help output.

    Lifecycle
    - Declared once, run many times. run() resets bound values and group
      counters before binding and holds the tree lock (owned by the root) so
      concurrent runs against the same tree are serialized.

    Parameters
    - name: command name as typed on the command line.
    - parent: Command | Unset, attaches this command as a subcommand.
    - descr: str | Text | Unset, shown in help.
    - flags: flags forming one DEFAULT group.
    - exclusive / together: iterables of flag iterables, one group each.
    - arguments: positional arguments in binding order.
    - action: callable receiving a Context; its return value is returned by run().
    - deprecated: a DeprecatedCommandWarning is emitted when the command runs.
    - shell, fancy, colorful: runtime flags; inherit from parent when Unset.
    """

    __introspectable__ = (
        "name",
        "descr",
        "deprecated",
        "parent",
        "children",
        "flags",
        "shorts",
        "groups",
        "arguments",
        "action",
        "shell",
        "fancy",
        "colorful",
    )

    __displayable__ = (
        "name",
        "descr",
        "parent",
        "children",
        "arguments",
        "shell",
        "fancy",
        "colorful",
    )

    @property
    def root(self):
        """
        the topmost command of this tree.
        """
        child, parent = self, self.parent
        while parent:
            child, parent = parent, parent.parent
        return child

    @property
    def path(self):
        """
        every command from the root down to this one.
        """
        path = [command := self]
        while command.parent:
            path.append(command := command.parent)
        return tuple(reversed(path))

    @property
    def lock(self):
        return self.root._lock

    def __init__(
            self,
            name,
            /,
            parent=Unset,
            descr=Unset,
            *,
            flags=(),
            exclusive=(),
            together=(),
            arguments=(),
            action=Unset,
            deprecated=False,
            shell=Unset,
            fancy=Unset,
            colorful=Unset
    ):
        cls = type(self)
        if not isinstance(name, str):
            raise TypeError(f"{cls.__typename__} 'name' must be a string")
        elif not _NAME.fullmatch(name := name.strip()):
            raise DeclarationError(f"{cls.__typename__} name {name!r} must be non-empty, without spaces or leading dashes")
        if not isinstance(parent, Command | Unset):
            raise TypeError(f"{cls.__typename__} {name!r} 'parent' must be a command")
        if not isinstance(descr, str | Text | Unset):
            raise TypeError(f"{cls.__typename__} {name!r} 'descr' must be a string")
        elif isinstance(descr, str) and not (descr := descr.strip()):
            raise DeclarationError(f"{cls.__typename__} {name!r} 'descr' cannot be empty")
        if action is not Unset and not builtins.callable(action):
            raise DeclarationError(f"{cls.__typename__} {name!r} 'action' must be callable")
        for option, groups in (("exclusive", exclusive), ("together", together)):
            if not isinstance(groups, Iterable) or isinstance(groups, str):
                raise TypeError(f"{cls.__typename__} {name!r} {option!r} must be an iterable of flag iterables")

        metadata = {
            "name": name,
            "descr": coalesce(descr),
            "deprecated": bool(deprecated),
            "parent": coalesce(parent),
            "children": {},
            "flags": {},
            "shorts": {},
            "groups": {},
            "arguments": [],
            "action": coalesce(action),
            "shell": bool(coalesce(shell, getattr(parent, "shell", False))),
            "fancy": bool(coalesce(fancy, getattr(parent, "fancy", False))),
            "colorful": bool(coalesce(colorful, getattr(parent, "colorful", False))),
        }
        for name, object in metadata.items():
            setattr(self, "_" + name, object)
        self._lock = threading.RLock()

        self.add_flags(Flag("help", "h", Kind.BOOL, "show this help message and exit"))
        if flags := tuple(flags):
            self.add_flags(*flags)
        for group in exclusive:
            self.add_exclusive(*group)
        for group in together:
            self.add_together(*group)
        self.add_arguments(*arguments)

        _attach_to_parent(self, self.parent)

    def _options(self):
        return {
            "tool": self,
            "shell": self.shell,
            "fancy": self.fancy,
            "colorful": self.colorful,
        }

    # -- composition ---------------------------------------------------------

    def _add_group(self, kind, flags):
        if not flags:
            raise DeclarationError(f"{type(self).__typename__} {self.name!r} {kind} group needs at least one flag")

        names, shorts = set(self._flags), set(self._shorts)
        for flag in flags:
            if not isinstance(flag, Flag):
                raise TypeError(f"{type(self).__typename__} {self.name!r} flags must be flags, not {type(flag).__name__}")
            if flag.group is not None:
                raise DeclarationError(f"flag {flag.label!r} already belongs to group {flag.group.id!r}")
            if flag.name in names:
                raise DeclarationError(f"{type(self).__typename__} {self.name!r} flag name {flag.name!r} is already in use")
            if flag.short in shorts:
                raise DeclarationError(f"{type(self).__typename__} {self.name!r} short alias {flag.short!r} is already in use")
            names.add(flag.name)
            if flag.short:
                shorts.add(flag.short)

        group = Group("%s:%d" % (self.name, len(self._groups) + 1), kind, flags)
        for flag in flags:
            flag._group = group
            self._flags[flag.name] = flag
            if flag.short:
                self._shorts[flag.short] = flag
        self._groups[group.id] = group
        logger.debug("command %r declared %s group %s with %s", self.name, kind, group.id, group.labels)
        return group

    def add_flags(self, *flags):
        """
        Register flags without a structural constraint (one DEFAULT group).
        """
        self._add_group(GroupKind.DEFAULT, flags)
        return self

    def add_exclusive(self, *flags):
        """
        Register flags of which at most one may be given.
        """
        self._add_group(GroupKind.EXCLUSIVE, flags)
        return self

    def add_together(self, *flags):
        """
        Register flags that must be given all together or not at all.
        """
        self._add_group(GroupKind.TOGETHER, flags)
        return self

    def add_arguments(self, *arguments):
        """
        Append positional arguments; they bind in the order they are added.
        """
        names = {argument.name for argument in self._arguments}
        for argument in arguments:
            if not isinstance(argument, Argument):
                raise TypeError(f"{type(self).__typename__} {self.name!r} arguments must be arguments, not {type(argument).__name__}")
            if argument._command is not None:
                raise DeclarationError(f"argument {argument.name!r} already belongs to command {argument._command.name!r}")
            if argument.name in names:
                raise DeclarationError(f"{type(self).__typename__} {self.name!r} argument name {argument.name!r} is already in use")
            names.add(argument.name)

        for argument in arguments:
            argument._command = self
            self._arguments.append(argument)
        return self

    def on_action(self, action, /):
        """
        Set the action once; returns it so it can be used as a decorator.
        """
        if not builtins.callable(action):
            raise DeclarationError(f"{type(self).__typename__} {self.name!r} action must be callable")
        if self._action is not None:
            raise DeclarationError(f"{type(self).__typename__} {self.name!r} action cannot be overridden")
        self._action = action
        return action

    def command(self, source=Unset, /, *args, **kwargs):
        """
        Create a subcommand of this command (see the module-level command()).
        """
        return command(source, self, *args, **kwargs)

    # -- pipeline ------------------------------------------------------------

    def resolve(self, repository, /):
        """
        Descend into subcommands named by the leading tokens.

        Returns the innermost matched command and the repository without the
        consumed tokens.

        Raises
        - MixedPositionalsError: leading tokens remain after descent while
          flags were also given.
        """
        command, leading = self, list(repository.leading)
        while leading and (child := command._children.get(leading[0])):
            logger.debug("descending from %r into %r", command.name, child.name)
            command = child
            del leading[0]

        if leading and repository.flags:
            route = " ".join(step.name for step in command.path)
            raise MixedPositionalsError(
                "positional %s %s cannot come before flags for command %r" % (
                    "token" if len(leading) == 1 else "tokens",
                    ", ".join(map(repr, leading)),
                    route,
                ),
                title="positionals before flags",
                code=FaultCode.MIXED_POSITIONALS,
                tool=command,
                leading=tuple(leading),
                hint="pass the flags first and %s after them" % " ".join(leading),
            )

        return command, repository._replace(leading=tuple(leading))

    def reset(self):
        """
        Forget every value bound by a previous run.
        """
        for flag in self._flags.values():
            flag._reset()
        for argument in self._arguments:
            argument._reset()
        for group in self._groups.values():
            group._reset()

    def _unknown(self, name, entry):
        spelling = ("--" if entry.long else "-") + name
        route = " ".join(step.name for step in self.path)
        candidates = ["--" + flag for flag in self._flags] + ["-" + short for short in self._shorts]
        if matches := difflib.get_close_matches(spelling, candidates, n=1):
            hint = "did you mean %r?" % matches[0]
        else:
            hint = "run '%s --help' to see the available flags" % route
        return UnknownFlagError(
            "unknown flag %r for command %r" % (spelling, route),
            title="unknown flag",
            code=FaultCode.UNKNOWN_FLAG,
            flag=spelling,
            hint=hint,
        )

    def bind(self, repository, /):
        """
        Assign raw values from a Repository onto this command's schema.

        - leading tokens, then trailing tokens, fill arguments in declaration
          order; tokens beyond the declared arguments are dropped.
        - each flag entry is looked up by long name or short alias.

        Raises
        - UnknownFlagError: a flag entry matches no declared flag.
        """
        dropped = []

        def place(index, token):
            if index < len(self._arguments):
                self._arguments[index]._bind(token)
            else:
                dropped.append(token)
            return index + 1

        index = 0
        for token in repository.leading:
            index = place(index, token)

        for name, entry in repository.flags.items():
            flag = (self._flags if entry.long else self._shorts).get(name)
            if flag is None:
                raise self._unknown(name, entry)
            flag._bind(entry.value)

        for token in repository.trailing:
            index = place(index, token)

        if dropped:
            logger.debug("command %r dropped excess positionals %r", self.name, dropped)
        logger.debug(
            "command %r bound flags %r and arguments %r",
            self.name,
            {flag.name: flag.value for flag in self._flags.values() if flag.bound},
            [argument.value for argument in self._arguments],
        )

    def validate(self):
        """
        Type and check every bound value; the first failure aborts.

        Order
        1. flags in declaration order: coerce, custom validators, count into
           their group (EXCLUSIVE fails on the second member).
        2. TOGETHER groups: all or nothing.
        3. arguments in order: missing value, coerce, custom validators.

        Raises
        - ValidationError subclasses (FormatError, ExclusiveFlagsError,
          TogetherFlagsError, MissingValueError, DelegatedValidationError) or
          any CommandException raised by a custom validator.
        """
        for group in self._groups.values():
            group._reset()

        for flag in self._flags.values():
            if not flag.bound:
                continue
            flag._coerce()
            flag._check()
            flag.group._meet(flag)
            if flag.deprecated:
                trigger(DeprecatedFlagWarning(
                    "flag %r is deprecated" % flag.label,
                    title="deprecated flag",
                    code=FaultCode.DEPRECATED_FLAG,
                    flag=flag,
                    hint="it may be removed in a future release",
                ), **self._options())

        for group in self._groups.values():
            group._settle()

        for index, argument in enumerate(self._arguments, 1):
            if not argument.bound:
                route = " ".join(step.name for step in self.path)
                raise MissingValueError(
                    "missing value for argument %r" % argument.name,
                    title="missing argument",
                    code=FaultCode.MISSING_VALUE,
                    argument=argument,
                    hint="pass %s as the %s positional argument: '%s %s'" % (
                        argument.name,
                        ordinal(index),
                        route,
                        " ".join(item.name for item in self._arguments),
                    ),
                )
            argument._coerce()
            argument._check()

    def run(self, args, /):
        """
        Run the command tree against a raw argument vector.

        Parameters
        - args: Iterable[str], arguments without the program name.

        Returns
        - the action's return value; None when help was printed or there is
          no action.

        Faults are surfaced through trigger(): raised in library mode, printed
        followed by exit status 1 in shell mode.
        """
        with self.lock:
            command = self
            try:
                command, repository = self.resolve(tokenize(args))
                command.reset()
                command.bind(repository)
                if command._flags["help"].bound:
                    command.help()
                    return None
                command.validate()
            except CommandException as fault:
                if isinstance(tool := fault.options.get("tool"), Command):
                    command = tool
                trigger(fault, **command._options())
                return None

            if command.deprecated:
                trigger(DeprecatedCommandWarning(
                    "command %r is deprecated" % " ".join(step.name for step in command.path),
                    title="deprecated command",
                    code=FaultCode.DEPRECATED_COMMAND,
                    hint="it may be removed in a future release",
                ), **command._options())

            if command.action is None:
                return None
            return command.action(Context(command))

    def __invoke__(self, prompt=Unset):
        """
        Run with a prompt: Unset reads sys.argv[1:], a string is split like a
        shell would, an iterable of strings is used as-is.
        """
        if prompt is Unset:
            tokens = sys.argv[1:]
        elif isinstance(prompt, str):
            tokens = shlex.split(prompt)
        elif isinstance(prompt, Iterable):
            tokens = list(prompt)
            if not all(isinstance(token, str) for token in tokens):
                raise TypeError("__invoke__() argument must be a string or an iterable of strings")
        else:
            raise TypeError("__invoke__() argument must be a string or an iterable of strings")
        return self.run(tokens)

    # -- rendering -----------------------------------------------------------

    @property
    def usage(self):
        """
        POSIX-style usage line, e.g. "calc [ sum | diff ] [ -h ] [ -s | -d ] x y".
        """
        parts = [" ".join(step.name for step in self.path)]
        if self._children:
            parts.append("[ %s ]" % " | ".join(self._children))
        for group in self._groups.values():
            match group.kind:
                case GroupKind.DEFAULT:
                    parts.extend("[ %s ]" % _spell(flag) for flag in group)
                case GroupKind.EXCLUSIVE:
                    parts.append("[ %s ]" % " | ".join(map(_spell, group)))
                case GroupKind.TOGETHER:
                    parts.append("[ %s ]" % " ".join(map(_spell, group)))
        parts.extend(argument.name for argument in self._arguments)
        return " ".join(parts)

    def help(self):
        """
        Print help to the console.

        Palette keys
        - usage-label, usage-section, description-section
        - table-title, table-border, flag-name, argument-name, children, kind
        - description, deprecated-name, deprecated-marker, panel-title

        Define a mapping named __styles__ in __main__ to override entries.
        When colorful is False, styling is suppressed; deprecated names keep
        a strike.
        """
        console = Console()
        styles = defaultdict(str, {
            "usage-label": "bold #00E6FF",
            "usage-section": "bold #36C5F0",
            "description-section": "italic #A3A3A3",
            "table-title": "bold #FFFFFF",
            "table-border": "#4B5563",
            "flag-name": "bold #22C55E",
            "argument-name": "bold #FFD600",
            "children": "bold #36C5F0",
            "kind": "#FF4D94",
            "description": "#9CA3AF",
            "deprecated-name": "bold #F97316 strike",
            "deprecated-marker": "bold #EF4444",
            "panel-title": "bold #FF4D94",
        } | getattr(__import__("__main__"), "__styles__", {}))

        def styler(style):
            if style == "deprecated-name" and not self.colorful:
                return "strike"
            return styles[style] if self.colorful else ""

        def text(fragment, style=""):
            if not fragment:
                return Text("")
            if isinstance(fragment, Text):
                return fragment if self.colorful else Text(str(fragment))
            return Text(str(fragment), style)

        def marked(descr, deprecated):
            descr = text(descr, styler("description"))
            if deprecated:
                return Text.assemble("[", text("DEPRECATED", styler("deprecated-marker")), "] ", descr)
            return descr

        def table(title, *columns):
            return Table(
                *columns,
                title=text(title, styler("table-title")),
                title_justify="left",
                box=ROUNDED,
                style=styler("table-border"),
                header_style=styler("table-title"),
            )

        usage = Text.assemble(text("usage:", styler("usage-label")), " ", text(self.usage, styler("usage-section")))
        if self.deprecated:
            usage = Text.assemble("[", text("DEPRECATED", styler("deprecated-marker")), "] ", usage)
        renders = [usage]

        if self.descr:
            renders.append(text(self.descr, styler("description-section")))

        flags = table("flags", "short", "long", "kind", "help")
        for flag in self._flags.values():
            style = styler("deprecated-name" if flag.deprecated else "flag-name")
            flags.add_row(
                text("-" + flag.short if flag.short else "", style),
                text(flag.label, style),
                text(flag.kind, styler("kind")),
                marked(flag.descr, flag.deprecated),
            )
        renders.append(flags)

        if self._arguments:
            arguments = table("arguments", "name", "kind", "help")
            for argument in self._arguments:
                arguments.add_row(
                    text(argument.name, styler("argument-name")),
                    text(argument.kind, styler("kind")),
                    marked(argument.descr, False),
                )
            renders.append(arguments)

        if self._children:
            children = table("subcommands" if self.parent else "commands", "name", "help")
            for name, child in self._children.items():
                children.add_row(
                    text(name, styler("deprecated-name" if child.deprecated else "children")),
                    marked(child.descr, child.deprecated),
                )
            renders.append(children)

        renderable = Renderables(*renders)
        if self.fancy:
            renderable = Panel(
                renderable,
                title=Text.assemble("[ ", f"{self.name} help".upper(), " ]", style=styler("panel-title")),
                title_align="left",
            )
        console.print(renderable)


def command(source=Unset, /, *args, **kwargs):
    """
    Create a Command, or return a decorator that creates one from an action.

    Invocation modes
    - By name:
        calc = command("calc", descr="tiny calculator", arguments=[...])
    - From an action (name defaults to its __name__, descr to its docstring):
        calc = command(action, ...)
    - Decorator:
        @command(arguments=[...])
        def calc(context): ...

    Parameters
    - source: Unset | str | Callable
    - *args, **kwargs: forwarded to Command (parent, descr, flags, ...).
    """
    @rename("command")
    def wrapper(source, /):
        if isinstance(source, str):
            return Command(source, *args, **kwargs)
        if not builtins.callable(source):
            raise TypeError("@command() must be applied to a callable")
        options = {"action": source} | kwargs
        if len(args) < 2:
            options.setdefault("descr", inspect.getdoc(source) or Unset)
        return Command(source.__name__, *args, **options)

    return wrapper(source) if source is not Unset else wrapper


def invoke(object, prompt=Unset, /):
    """
    Run a command with a prompt (see Command.__invoke__) and return the
    action's result. A plain callable is wrapped with command() first.
    """
    if hasattr(object, "__invoke__") and builtins.callable(object.__invoke__):
        return object.__invoke__(prompt)
    if builtins.callable(object):
        return invoke(command(object), prompt)
    target = "argument" if prompt is Unset else "first argument"
    raise TypeError(f"invoke() {target} must implement __invoke__ method")


__all__ = (
    "Context",
    "Command",
    "command",
    "invoke",
)

del CommandType
