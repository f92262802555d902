"""
Argbind value kinds (the type registry).

Every declared flag and argument has exactly one Kind. Raw strings coming from
the command line are turned into typed values by coerce(kind, raw), which looks
up the coercion function registered for that kind.

Kinds
- INT8, INT16, INT32, INT64: base-10 signed integers that must fit the width.
- FLOAT32, FLOAT64: decimal floating point; FLOAT32 results are rounded to
  single precision and out-of-range magnitudes are rejected.
- STRING: identity.
- BOOL: canonical spellings; the empty string means True so that a bare flag
  (``-v``) reads as set.

INTEGER and FLOAT are aliases of INT32 and FLOAT32.

Failures raise FormatError (without a subject; the validator names the flag or
argument when it re-raises).
"""
import logging
import math
import re
import struct
from enum import Enum

from .faults import FaultCode, FormatError

logger = logging.getLogger(__name__)


class Kind(Enum):
    """
    declared value type of a flag or argument.

    the value is the lowercase label used in messages and help output.
    """
    INT8 = "int8"
    INT16 = "int16"
    INT32 = "int32"
    INT64 = "int64"
    FLOAT32 = "float32"
    FLOAT64 = "float64"
    STRING = "string"
    BOOL = "bool"

    # aliases
    INTEGER = "int32"
    FLOAT = "float32"

    @property
    def bits(self):
        """
        bit width for numeric kinds, None for STRING and BOOL.
        """
        if self.value.startswith(("int", "float")):
            return int(self.value.lstrip("intfloa"))
        return None

    def __str__(self):
        return self.value


_INTEGER = re.compile(r"[+-]?[0-9]+", re.ASCII)
_FLOAT = re.compile(
    r"[+-]?(?:(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?|inf|infinity|nan)",
    re.ASCII | re.IGNORECASE
)

_TRUE = frozenset(("1", "t", "T", "TRUE", "true", "True"))
_FALSE = frozenset(("0", "f", "F", "FALSE", "false", "False"))


def _invalid(kind, raw, reason):
    return FormatError(
        "invalid %s value %r: %s" % (kind, raw, reason),
        title="invalid value",
        code=FaultCode.INVALID_FORMAT,
        kind=kind,
        value=raw,
        hint="pass a valid %s (for example: %s)" % (kind, _EXAMPLES[kind]),
    )


def _integer(kind, raw):
    if not _INTEGER.fullmatch(raw):
        raise _invalid(kind, raw, "not a base-10 integer")
    value = int(raw)
    limit = 1 << (kind.bits - 1)
    if not -limit <= value < limit:
        raise _invalid(kind, raw, "out of range [%d, %d]" % (-limit, limit - 1))
    return value


def _float(kind, raw):
    if not _FLOAT.fullmatch(raw):
        raise _invalid(kind, raw, "not a decimal number")
    value = float(raw)
    if math.isinf(value) and "inf" not in raw.lower():
        raise _invalid(kind, raw, "out of range for %d-bit precision" % kind.bits)
    if kind.bits == 32 and math.isfinite(value):
        try:
            packed = struct.pack("<f", value)
        except OverflowError:
            raise _invalid(kind, raw, "out of range for 32-bit precision") from None
        value = struct.unpack("<f", packed)[0]
    return value


def _string(kind, raw):
    return raw


def _bool(kind, raw):
    if not raw or raw in _TRUE:
        return True
    if raw in _FALSE:
        return False
    raise _invalid(kind, raw, "not a boolean")


_EXAMPLES = {
    Kind.INT8: "-8, 0, 127",
    Kind.INT16: "-16, 0, 32767",
    Kind.INT32: "-32, 0, 10",
    Kind.INT64: "-64, 0, 10",
    Kind.FLOAT32: "1.5, -2e3",
    Kind.FLOAT64: "1.5, -2e3",
    Kind.STRING: "text",
    Kind.BOOL: "true, false, 1, 0",
}

_coercers = {
    Kind.INT8: _integer,
    Kind.INT16: _integer,
    Kind.INT32: _integer,
    Kind.INT64: _integer,
    Kind.FLOAT32: _float,
    Kind.FLOAT64: _float,
    Kind.STRING: _string,
    Kind.BOOL: _bool,
}


def coerce(kind, raw, /):
    """
    Convert a raw command-line string into a value of the given kind.

    Parameters
    - kind: Kind
    - raw: str, exactly as it came out of the tokenizer.

    Returns
    - int, float, str or bool depending on the kind.

    Raises
    - FormatError: the string does not parse as the kind or exceeds its width.
    - TypeError: kind is not a Kind or raw is not a string.
    """
    if not isinstance(kind, Kind):
        raise TypeError("coerce() first argument must be a kind")
    if not isinstance(raw, str):
        raise TypeError("coerce() second argument must be a string")
    value = _coercers[kind](kind, raw)
    logger.debug("coerced %r as %s -> %r", raw, kind, value)
    return value


def register(kind, coercer, /):
    """
    Replace the coercion function used for a kind.

    The coercer is called as coercer(kind, raw) and must return the typed
    value or raise FormatError. Returns the coercer so it can be used as a
    decorator target.
    """
    if not isinstance(kind, Kind):
        raise TypeError("register() first argument must be a kind")
    if not callable(coercer):
        raise TypeError("register() second argument must be callable")
    _coercers[kind] = coercer
    return coercer


__all__ = (
    "Kind",
    "coerce",
    "register",
)
