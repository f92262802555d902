"""
Argbind faults (errors and warnings) and rendering.

Scope
- FaultCode: canonical, stable numeric identifiers for every user-facing issue,
  grouped by the pipeline stage that detects it (tokenizing, binding,
  validation, warnings).
- CommandException / CommandWarning: base types carrying a message plus a
  read-only mapping of options (title, code, hint and fault payload) that know
  how to render themselves with rich.
- DeclarationError: schema-building mistakes. These are programmer errors,
  raised immediately and never rendered as user faults.
- trigger(): central entry point to surface a fault (raise/warn in library
  mode, print in shell mode).

Integration
- The tokenizer, binder and validator raise CommandException subclasses with
  the options describing the fault.
- Command.run() catches them and calls trigger(fault, tool=..., shell=...):
  outside shell mode the fault is raised again, in shell mode it is printed to
  stderr and the process exits with status 1.
"""
import inspect
import os.path
import sys
import warnings
from collections import defaultdict
from enum import IntEnum
from types import MappingProxyType

from rich.console import Console, Group
from rich.panel import Panel
from rich.text import Text

console = Console(stderr=True)


class FaultCode(IntEnum):
    """
    canonical fault codes used across the engine (stable identifiers).

    grouping
    - syntax (111xx): MALFORMED_FLAG, MISPLACED_FLAG, MIXED_POSITIONALS
    - binding (112xx): UNKNOWN_FLAG
    - validation (113xx): INVALID_FORMAT, EXCLUSIVE_FLAGS, TOGETHER_FLAGS,
      MISSING_VALUE, DELEGATED_ERROR
    - warnings (12xxx): DEPRECATED_FLAG, DEPRECATED_COMMAND

    spacing leaves room for future additions without reshuffling codes.
    """
    # --- syntax errors (111xx) ---
    MALFORMED_FLAG     = 11101
    MISPLACED_FLAG     = 11102
    MIXED_POSITIONALS  = 11103

    # --- binding errors (112xx) ---
    UNKNOWN_FLAG       = 11201

    # --- validation errors (113xx) ---
    INVALID_FORMAT     = 11301
    EXCLUSIVE_FLAGS    = 11302
    TOGETHER_FLAGS     = 11303
    MISSING_VALUE      = 11304
    DELEGATED_ERROR    = 11305

    # --- warnings (12xxx) ---
    DEPRECATED_FLAG    = 12101
    DEPRECATED_COMMAND = 12102

    def normalize(self):
        """
        return a host-normalized string for this code.

        the host application can provide a __codes__ mapping in __main__ to
        override numeric ids with friendlier labels. when no mapping is present,
        the numeric value is returned as a string.
        """
        return str(getattr(__import__("__main__"), "__codes__", {}).get(self, self.value))


class DeclarationError(ValueError):
    """
    Raised while building a command schema (duplicate names, bad shapes).

    This reflects a static bug in the program declaring the schema, not bad
    user input, so it is not part of the CommandException hierarchy and is
    never routed through trigger().
    """


def _render(fault, palette, kind):
    """
    Build the rich renderable shared by exceptions and warnings.

    Layout: "[ <prog> — <code> | <Title> ]", the message, then "→ <hint>".
    Wrapped in a Panel when the 'fancy' option is set.
    """
    main = __import__("__main__")
    options = fault.options
    colorful = options.get("colorful", False)

    styles = defaultdict(str, palette | getattr(main, "__styles__", {}))

    def styler(style):
        return styles[style] if colorful else ""

    def text(fragment, style=""):
        if not fragment:
            return Text("")
        if isinstance(fragment, Text):
            return fragment if colorful else Text(str(fragment))
        return Text(str(fragment), style)

    if (tool := options.get("tool")) is not None:
        prog = " ".join(command.name for command in tool.path)
    else:
        prog = "argbind"
    prog = text(getattr(main, "__prog__", prog), styler("prog-name"))

    code = options.get("code")
    header = Text.assemble(
        "[ ",
        prog,
        " — ",
        text(code.normalize() if isinstance(code, FaultCode) else code or kind, styler("code")),
        " | ",
        text(str(options.get("title", kind)).title(), styler("%s-title" % kind)),
        " ]"
    )
    message = text(fault.message, styler("%s-message" % kind))

    renders = [message]
    if hint := options.get("hint"):
        renders.append(Text.assemble(text(" → ", styler("hint-arrow")), text(hint, styler("hint"))))

    if options.get("fancy"):
        return Panel(Group(*renders), title=header, title_align="left")
    return Group(header, *renders)


class CommandException(Exception):
    """
    Base type for every recoverable fault produced while running a command.

    Parameters
    - message: positional-only, the one-sentence description shown to users.
    - **options: title, code, hint and any payload the raising site attaches
      (flag, argument, group, value, ...). Stored as a read-only mapping
      and readable as attributes (fault.flag, fault.hint, ...).
    """

    def __init__(self, message, /, **options):
        if not isinstance(message, str):
            raise TypeError("%s() message must be a string" % type(self).__name__)
        super().__init__(message)
        self.message = message
        self.options = MappingProxyType(options)

    def __getattr__(self, name, /):
        try:
            return vars(self)["options"][name]
        except KeyError:
            raise AttributeError("%r object has no attribute %r" % (type(self).__name__, name)) from None

    def __rich__(self):
        return _render(self, {
            "prog-name": "bold #E6E6F0",
            "code": "bold #00E5FF",
            "error-title": "bold #FF4DA6",
            "error-message": "#C8C8D0",
            "hint-arrow": "#9CE19C dim",
            "hint": "italic #9CE19C",
        }, "error")

    def __trigger__(self):
        if not self.options.get("shell"):
            raise self from self.__cause__
        console.print(self)
        sys.exit(1)

    def __replace__(self, *unused, **overrides):
        assert not unused, "unused arguments are not allowed"
        clone = type(self)(self.message, **{**self.options, **overrides})
        clone.__cause__ = self.__cause__
        return clone


# --- syntax (tokenizer / walker) ---
class CommandSyntaxError(CommandException): ...
class MalformedFlagError(CommandSyntaxError): ...
class MisplacedFlagError(CommandSyntaxError): ...
class MixedPositionalsError(CommandSyntaxError): ...

# --- binding ---
class UnknownFlagError(CommandException): ...

# --- validation ---
class ValidationError(CommandException): ...
class FormatError(ValidationError): ...
class ConstraintError(ValidationError): ...
class ExclusiveFlagsError(ConstraintError): ...
class TogetherFlagsError(ConstraintError): ...
class MissingValueError(ValidationError): ...
class DelegatedValidationError(ValidationError): ...


class CommandWarning(Warning):
    """
    Base type for non-fatal notices (deprecations).

    Library mode emits through warnings.warn so hosts can filter/record them;
    shell mode prints the rendered warning to stderr and carries on.
    """

    def __init__(self, message, /, **options):
        if not isinstance(message, str):
            raise TypeError("%s() message must be a string" % type(self).__name__)
        super().__init__(message)
        self.message = message
        self.options = MappingProxyType(options)

    def __getattr__(self, name, /):
        try:
            return vars(self)["options"][name]
        except KeyError:
            raise AttributeError("%r object has no attribute %r" % (type(self).__name__, name)) from None

    def __rich__(self):
        return _render(self, {
            "prog-name": "bold #E6E6F0",
            "code": "bold #FFB400",
            "warning-title": "bold #FFC2E0",
            "warning-message": "#D6D6DE",
            "hint-arrow": "#B8EFAF dim",
            "hint": "italic #B8EFAF",
        }, "warning")

    def __trigger__(self):
        if not self.options.get("shell"):
            # point at the first frame outside this package
            frames = inspect.stack()
            depth = next(
                (index for index, frame in enumerate(frames) if not frame.filename.startswith(os.path.dirname(__file__))),
                len(frames)
            )
            return warnings.warn(self, stacklevel=depth + 1)
        console.print(self)

    def __replace__(self, *unused, **overrides):
        assert not unused, "unused arguments are not allowed"
        return type(self)(self.message, **{**self.options, **overrides})


class DeprecatedFlagWarning(CommandWarning): ...
class DeprecatedCommandWarning(CommandWarning): ...


def trigger(fault, /, **options):
    """
    surface a fault with the given runtime options.

    contract
    - fault must provide __trigger__ and __replace__ methods (see base classes).
    - options are merged into the fault via __replace__(**options) before
      triggering.
    - exceptions are raised (library mode) or printed followed by exit status 1
      (shell mode); warnings are warned or printed.

    typical options
    - tool, shell, fancy, colorful, and any fault payload.
    """
    if (
        not hasattr(fault, "__trigger__") or
        not callable(fault.__trigger__) or
        not hasattr(fault, "__replace__") or
        not callable(fault.__replace__)
    ):
        raise TypeError("trigger() argument must have a __trigger__ and __replace__ methods")
    fault.__replace__(**options).__trigger__()


__all__ = (
    "FaultCode",
    "DeclarationError",
    "CommandException",
    "CommandSyntaxError",
    "MalformedFlagError",
    "MisplacedFlagError",
    "MixedPositionalsError",
    "UnknownFlagError",
    "ValidationError",
    "FormatError",
    "ConstraintError",
    "ExclusiveFlagsError",
    "TogetherFlagsError",
    "MissingValueError",
    "DelegatedValidationError",
    "CommandWarning",
    "DeprecatedFlagWarning",
    "DeprecatedCommandWarning",
    "trigger",
)
