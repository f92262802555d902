r"""
Argbind flag and argument declarations.

Overview
- Flag: named option with a long spelling (``--amount``) and an optional
  one-character short alias (``-n``). Bound by name.
- Argument: positional parameter bound by declaration order.

Both share the Bindable base, which owns the part of the pipeline that does
not depend on how a value was located:
- the declared Kind and the raw → typed coercion (see argbind.kinds),
- the ordered custom validators,
- the bound value (None until the binder assigns the raw string).

Introspection & representation
- ArgumentType metaclass provides a stable __repr__/__rich_repr__ and exposes
  the fields listed in __introspectable__ as read-only properties (mirror()).

Custom validators
- Plain callables receiving the Flag/Argument once its value is typed.
- Failure is signalled by raising. CommandException subclasses propagate as-is;
  any other Exception is wrapped in DelegatedValidationError (chained).

Quick example:
    >>> from argbind import Flag, Argument, Kind
    >>> amount = Flag("amount", "n", Kind.INT32, "how many times")
    >>> path = Argument("path", Kind.STRING, "file to read")
"""
import functools
import operator
import re
from collections.abc import Iterable

from rich.text import Text

from .faults import CommandException, DeclarationError, DelegatedValidationError, FaultCode, FormatError
from .kinds import Kind, coerce
from .utils import *

_NAME = re.compile(r"[^\W\d_](-?[^\W_]+)*")
_SHORT = re.compile(r"[^\W_]")


class ArgumentType(type):
    """
    Metaclass that turns declarations into introspectable records.

    Responsibilities
    - __typename__ derived from the class name (camel-case split with hyphens)
      for messages.
    - read-only properties for every name in __introspectable__ (mirror()).
    - stable __repr__/__rich_repr__ listing __displayable__ (or
      __introspectable__) fields.
    """
    __introspectable__ = ()
    __displayable__ = Unset

    def __new__(cls, name, bases, namespace, **options):
        self = super().__new__(
            cls,
            name,
            bases,
            namespace | {
                "__typename__": re.sub(r"(?<!^)(?=[A-Z])", r"-", name).lower(),
            } | {
                name: mirror(name) for name in namespace.get("__introspectable__", ())
            },
        )

        @rename("__repr__")
        def __repr__(self):
            return "%s(%s)" % (
                type(self).__typename__,
                ", ".join(map(functools.partial(operator.mod, "%s=%r"), self.__rich_repr__()))
            )
        self.__repr__ = __repr__

        @rename("__rich_repr__")
        def __rich_repr__(self):
            for name in coalesce(type(self).__displayable__, type(self).__introspectable__):
                yield name, getattr(self, name)
        self.__rich_repr__ = __rich_repr__

        return self


def _sanitize_metadata(cls, metadata, /):
    """
    Internal: validate and normalize metadata shared by flags and arguments.

    - name: required identifier-like string (letters/digits, single hyphens,
      leading letter). Dashes are not part of the name.
    - kind: Kind or its label ("int32", "bool", ...).
    - descr: Unset | str | Text; trimmed, empty rejected, defaults to None.
    - validators: iterable of callables, stabilized into a tuple.

    Raises TypeError for wrong scalar types and DeclarationError for bad values
    or non-callable validators.
    Mutates metadata in place.
    """
    if not isinstance(name := metadata["name"], str):
        raise TypeError(f"{cls.__typename__} 'name' must be a string")
    elif not _NAME.fullmatch(name := name.strip()):
        raise DeclarationError(f"{cls.__typename__} name {name!r} is not a valid name (use letters, digits and single hyphens, no leading dashes)")
    metadata["name"] = name

    if isinstance(kind := metadata["kind"], str):
        try:
            kind = Kind(kind)
        except ValueError:
            raise DeclarationError(f"{cls.__typename__} {name!r} kind {kind!r} is not a known kind") from None
    elif not isinstance(kind, Kind):
        raise TypeError(f"{cls.__typename__} {name!r} 'kind' must be a kind")
    metadata["kind"] = kind

    if not isinstance(descr := metadata["descr"], str | Text | Unset):
        raise TypeError(f"{cls.__typename__} {name!r} 'descr' must be a string")
    elif isinstance(descr, str) and not (descr := descr.strip()):
        raise DeclarationError(f"{cls.__typename__} {name!r} 'descr' cannot be empty")
    metadata["descr"] = coalesce(descr)

    if not isinstance(validators := metadata["validators"], Iterable) or isinstance(validators, str):
        raise DeclarationError(f"{cls.__typename__} {name!r} 'validators' must be an iterable of callables")
    validators = tuple(validators)
    if not all(map(callable, validators)):
        raise DeclarationError(f"{cls.__typename__} {name!r} 'validators' must be an iterable of callables")
    metadata["validators"] = validators


class Bindable(metaclass=ArgumentType):
    """
    Shared behavior of flags and arguments: typed value, coercion, validation.

    Subclasses provide `label` (how the entity is spelled in messages) and
    their own constructor metadata. The bound value follows one path per run:
    None → raw string (binder) → typed value (validator). The raw string is
    kept aside so the validator can run again on the same binding.
    """

    @property
    def value(self):
        """
        the bound value: None (unset), the raw string (bound), or the typed value (validated).
        """
        return self._value

    @property
    def bound(self):
        """
        True when the binder assigned a raw value during the current run.
        """
        return self._raw is not None

    def _bind(self, raw, /):
        self._raw = self._value = raw

    def _reset(self):
        self._raw = self._value = None

    def _coerce(self):
        """
        Derive the typed value for the declared kind from the raw string.
        """
        try:
            self._value = coerce(self.kind, self._raw)
        except FormatError as fault:
            raise FormatError(
                "invalid value %r for %s %r: expected %s" % (self._raw, type(self).__typename__, self.label, self.kind),
                **fault.options,
                subject=self,
            ) from None

    def _check(self):
        """
        Run the custom validators in declaration order; the first failure wins.
        """
        for validator in self.validators:
            try:
                validator(self)
            except CommandException:
                raise
            except Exception as exception:
                raise DelegatedValidationError(
                    "%s %r rejected value %r: %s" % (type(self).__typename__, self.label, self._value, exception),
                    title="invalid %s" % type(self).__typename__,
                    code=FaultCode.DELEGATED_ERROR,
                    subject=self,
                    exception=exception,
                    hint="check the value passed to %s" % self.label,
                ) from exception


class Flag(Bindable):
    """
    Named option bound by its long name or short alias.

    Highlights
    - name: long spelling without dashes ("amount" for --amount), unique per command.
    - short: optional single character ("n" for -n), unique per command.
    - kind: declared Kind; BOOL flags accept a bare spelling as True.
    - deprecated: still accepted, but a DeprecatedFlagWarning is emitted when used.
    - group: the Group this flag joined when registered on a command.

    Unset flags are legal; a "required" flag is expressed by a custom validator
    on a sibling or by the command's action.
    """

    __introspectable__ = (
        "name",
        "short",
        "kind",
        "descr",
        "deprecated",
        "validators",
    )
    __displayable__ = (
        "name",
        "short",
        "kind",
        "deprecated",
        "value",
    )

    def __init__(
            self,
            name,
            short=Unset,
            /,
            kind=Kind.STRING,
            descr=Unset,
            *,
            validators=(),
            deprecated=False
    ):
        metadata = {
            "name": name,
            "short": short,
            "kind": kind,
            "descr": descr,
            "validators": validators,
            "deprecated": bool(deprecated),
        }
        _sanitize_metadata(type(self), metadata)

        if not isinstance(short := metadata["short"], str | Unset):
            raise TypeError(f"flag {name!r} 'short' must be a string")
        elif isinstance(short, str) and not _SHORT.fullmatch(short := short.strip()):
            raise DeclarationError(f"flag {name!r} short alias {short!r} must be a single letter or digit")
        metadata["short"] = coalesce(short)

        for name, object in metadata.items():
            setattr(self, "_" + name, object)
        self._raw = self._value = None
        self._group = None

    @property
    def label(self):
        return "--" + self.name

    @property
    def spellings(self):
        """
        every way this flag can be written on the command line.
        """
        return ("-" + self.short, self.label) if self.short else (self.label,)

    @property
    def group(self):
        return self._group


class Argument(Bindable):
    """
    Positional parameter bound by declaration order.

    Highlights
    - name: unique per command; used as the Context key and in messages.
    - kind: declared Kind.
    - every declared argument must end the bind phase with a value
      (MissingValueError otherwise).
    """

    __introspectable__ = (
        "name",
        "kind",
        "descr",
        "validators",
    )
    __displayable__ = (
        "name",
        "kind",
        "value",
    )

    def __init__(
            self,
            name,
            /,
            kind=Kind.STRING,
            descr=Unset,
            *,
            validators=()
    ):
        metadata = {
            "name": name,
            "kind": kind,
            "descr": descr,
            "validators": validators,
        }
        _sanitize_metadata(type(self), metadata)

        for name, object in metadata.items():
            setattr(self, "_" + name, object)
        self._raw = self._value = None
        self._command = None

    @property
    def label(self):
        return self.name


__all__ = (
    "Bindable",
    "Flag",
    "Argument",
)

# The metaclass is an implementation detail; keep it out of star-imports.
del ArgumentType
