"""
Argbind flag groups.

Every flag registered on a command belongs to exactly one Group. The group
kind decides which structural rule the validator enforces once flags are
typed:

- DEFAULT: no constraint.
- EXCLUSIVE: at most one member may be set. Checked while counting, so the
  second set member fails immediately.
- TOGETHER: either no member or every member is set. Checked after every flag
  was counted.

Groups keep a running `met` counter (members observed with a value during the
current validation); Command.run() resets it before each pass.
"""
import logging
from enum import Enum

from .faults import ExclusiveFlagsError, FaultCode, TogetherFlagsError
from .utils import *

logger = logging.getLogger(__name__)


class GroupKind(Enum):
    DEFAULT = "default"
    EXCLUSIVE = "exclusive"
    TOGETHER = "together"

    def __str__(self):
        return self.value


class Group:
    """
    Ordered set of flags sharing one structural rule.

    Parameters
    - id: identifier local to the owning command ("<command>:<n>").
    - kind: GroupKind.
    - flags: member flags in declaration order.
    """

    id = mirror("id")
    kind = mirror("kind")
    flags = mirror("flags")
    met = mirror("met")

    def __init__(self, id, kind, flags, /):
        self._id = id
        self._kind = kind
        self._flags = tuple(flags)
        self._met = 0

    def __repr__(self):
        return "group(id=%r, kind=%s, flags=%r, met=%d)" % (
            self._id, self._kind, [flag.name for flag in self._flags], self._met
        )

    def __len__(self):
        return len(self._flags)

    def __iter__(self):
        return iter(self._flags)

    @property
    def labels(self):
        return [flag.label for flag in self._flags]

    def _reset(self):
        self._met = 0

    def _meet(self, flag, /):
        """
        Count a member that ended binding with a value.
        """
        self._met += 1
        logger.debug("group %s counted %s (%d/%d)", self._id, flag.label, self._met, len(self._flags))
        if self._kind is GroupKind.EXCLUSIVE and self._met > 1:
            others = [member.label for member in self._flags if member is not flag and member.bound]
            raise ExclusiveFlagsError(
                "flags %s are mutually exclusive" % ", ".join(self.labels),
                title="conflicting flags",
                code=FaultCode.EXCLUSIVE_FLAGS,
                group=self,
                flag=flag,
                hint="pass only one of %s (%s was given along with %s)" % (
                    ", ".join(self.labels), flag.label, ", ".join(others)
                ),
            )

    def _settle(self):
        """
        Enforce the all-or-nothing rule once every member was counted.
        """
        if self._kind is GroupKind.TOGETHER and 0 < self._met < len(self._flags):
            missing = [flag.label for flag in self._flags if not flag.bound]
            raise TogetherFlagsError(
                "flags %s must be passed together" % ", ".join(self.labels),
                title="incomplete flags",
                code=FaultCode.TOGETHER_FLAGS,
                group=self,
                missing=missing,
                hint="also pass %s" % ", ".join(missing),
            )


__all__ = (
    "GroupKind",
    "Group",
)
