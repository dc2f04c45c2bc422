# gotmpls/scope.py
"""
Dot scopes for template validation.

Frames live in an arena (a list indexed by frame id); the active chain is a
stack of indices.  Variable lookup walks parent links and stops at an
isolated frame (``define``, ``block`` and ``template`` bodies), where only
``$`` is pre-bound.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Dict, List, Optional

from gotmpls.errors import InternalError
from gotmpls.gotypes import UNKNOWN, GoType


class DotState(Enum):
    UNBOUND = auto()        # nothing known about dot
    BOUND = auto()          # dot is a registry type
    BOUND_UNKNOWN = auto()  # dot is a basic or unregistered type


@dataclass
class Frame:
    index: int
    parent: Optional[int]
    dot: GoType
    state: DotState
    label: str = "block"
    isolated: bool = False
    variables: Dict[str, GoType] = field(default_factory=dict)


class ScopeStack:
    """Arena of frames plus the stack of currently active frame ids."""

    def __init__(self, root: GoType = UNKNOWN, state: DotState = DotState.UNBOUND) -> None:
        self.frames: List[Frame] = []
        self._active: List[int] = []
        self.enter_scope(root, state, "root", isolated=True)

    @property
    def current(self) -> Frame:
        return self.frames[self._active[-1]]

    @property
    def depth(self) -> int:
        return len(self._active)

    def enter_scope(
        self,
        dot: GoType,
        state: DotState,
        label: str = "block",
        isolated: bool = False,
    ) -> Frame:
        parent = None if isolated or not self._active else self._active[-1]
        frame = Frame(len(self.frames), parent, dot, state, label, isolated)
        if isolated:
            frame.variables["$"] = dot
        self.frames.append(frame)
        self._active.append(frame.index)
        return frame

    def enter_same_dot(self, label: str = "block") -> Frame:
        """Push a lexical frame that keeps the current dot."""
        cur = self.current
        return self.enter_scope(cur.dot, cur.state, label)

    def exit_scope(self) -> Frame:
        if len(self._active) <= 1:
            raise InternalError("cannot exit the root scope")
        return self.frames[self._active.pop()]

    def _chain(self):
        index: Optional[int] = self._active[-1]
        while index is not None:
            frame = self.frames[index]
            yield frame
            if frame.isolated:
                return
            index = frame.parent

    def lookup(self, name: str) -> Optional[GoType]:
        for frame in self._chain():
            if name in frame.variables:
                return frame.variables[name]
        return None

    def is_visible(self, name: str) -> bool:
        return any(name in frame.variables for frame in self._chain())

    def declare(self, name: str, type_: GoType) -> None:
        self.current.variables[name] = type_

    def assign(self, name: str, type_: GoType) -> bool:
        """Rebind a visible variable; False when it is not declared."""
        for frame in self._chain():
            if name in frame.variables:
                frame.variables[name] = type_
                return True
        return False


__all__ = ["DotState", "Frame", "ScopeStack"]
