"""
Exceptions raised by the wire kernel.
"""

from __future__ import annotations


class KernelError(RuntimeError):
    """Base class for wire kernel errors."""
    pass


class WireEditError(KernelError, ValueError):
    """
    A wire edit was requested with arguments that cannot be honoured
    (bad index, non-orthogonal segment, collapsing geometry, wrong phase).

    These indicate a caller bug such as a stale selection. The kernel raises
    before mutating anything, so the document is unchanged.
    """
    pass


class UnknownEntityError(WireEditError, KeyError):
    """An edit referenced a wire or junction id that does not exist."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message.
        return str(self.args[0]) if self.args else ""
