"""
Argbind tokenizer: split raw arguments into a Repository.

A Repository separates three regions of the command line:

    leading tokens │ flags (long/short, valued or clustered) │ trailing tokens
    build sum      │ --amount 10 -v                          │ x y

- leading: every token before the first flag-shaped one (subcommand path or
  positional arguments).
- flags: name (without dashes) -> Entry(value, long). The last occurrence
  wins; insertion order follows the first occurrence.
- trailing: the first non-flag token after flag parsing began and everything
  after it. A flag-shaped token in this region is a syntax error.

Flag shapes
- ``--name``, ``--name value``, ``--name=value`` (only the first '=' splits)
- ``-x``, ``-x value``
- ``-abc`` (cluster: a, b and c each recorded with an empty value)

A value is taken from the next token only when that token is not itself
flag-shaped. Empty values are left as "" here; the bool kind reads them as
True later on.
"""
import logging
from typing import NamedTuple

from .faults import FaultCode, MalformedFlagError, MisplacedFlagError
from .utils import ordinal

logger = logging.getLogger(__name__)


class Entry(NamedTuple):
    """
    raw value recorded for one flag and whether it was spelled long (--name).
    """
    value: str
    long: bool


class Repository(NamedTuple):
    """
    one-shot parse result of a raw argument vector.
    """
    leading: tuple[str, ...]
    flags: dict[str, Entry]
    trailing: tuple[str, ...]


def is_long(token):
    return token.startswith("--")


def is_flag(token):
    return token.startswith("-")


def _malformed(token, index):
    return MalformedFlagError(
        "flag name cannot be empty in %r at %s position" % (token, ordinal(index)),
        title="malformed flag",
        code=FaultCode.MALFORMED_FLAG,
        token=token,
        index=index,
        hint="spell flags as --name, --name=value, -x or -xyz",
    )


def tokenize(args, /):
    """
    Classify a raw argument vector into a Repository.

    Parameters
    - args: Iterable[str], the process arguments without the program name.

    Returns
    - Repository(leading, flags, trailing)

    Raises
    - MalformedFlagError: '--', '--=value' or a bare '-'.
    - MisplacedFlagError: a flag after trailing positional tokens began.
    - TypeError: args is a string or holds non-string items.
    """
    if isinstance(args, str):
        raise TypeError("tokenize() argument must be an iterable of strings, not a string")
    args = tuple(args)
    if not all(isinstance(arg, str) for arg in args):
        raise TypeError("tokenize() argument must be an iterable of strings")

    index = 0
    while index < len(args) and not is_flag(args[index]):
        index += 1
    leading = args[:index]

    flags = {}
    trailing = []

    while index < len(args):
        token = args[index]
        following = args[index + 1] if index + 1 < len(args) else None
        takes = following is not None and not is_flag(following)

        if trailing:
            if is_flag(token):
                raise MisplacedFlagError(
                    "flag %r at %s position follows positional arguments" % (token, ordinal(index + 1)),
                    title="flag after positionals",
                    code=FaultCode.MISPLACED_FLAG,
                    token=token,
                    index=index + 1,
                    trailing=tuple(trailing),
                    hint="move %r before %r" % (token, trailing[0]),
                )
            trailing.append(token)
        elif is_long(token):
            name, separator, value = token[2:].partition("=")
            if not name:
                raise _malformed(token, index + 1)
            if not separator and takes:
                value = following
                index += 1
            flags[name] = Entry(value, True)
        elif is_flag(token):
            body = token[1:]
            if not body:
                raise _malformed(token, index + 1)
            if len(body) > 1:
                flags.update(dict.fromkeys(body, Entry("", False)))
            elif takes:
                flags[body] = Entry(following, False)
                index += 1
            else:
                flags[body] = Entry("", False)
        else:
            trailing.append(token)

        index += 1

    repository = Repository(leading, flags, tuple(trailing))
    logger.debug("tokenized %r into %r", args, repository)
    return repository


__all__ = (
    "Entry",
    "Repository",
    "tokenize",
)
