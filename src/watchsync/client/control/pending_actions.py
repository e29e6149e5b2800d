"""Per-action echo flags.

Before the engine commands the local player it marks the matching action as
expecting an echo. The next native event of that kind is then swallowed
exactly once and the flag returns to genuine.
"""

from __future__ import annotations

from watchsync.protocol.messages import ActionKind


class PendingActionTracker:
    def __init__(self) -> None:
        self._genuine: dict[ActionKind, bool] = {kind: True for kind in ActionKind}

    def is_genuine(self, kind: ActionKind | str) -> bool:
        return self._genuine[ActionKind(kind)]

    def expect_echo(self, kind: ActionKind | str) -> None:
        self._genuine[ActionKind(kind)] = False

    def mark_genuine(self, kind: ActionKind | str) -> None:
        self._genuine[ActionKind(kind)] = True

    def consume(self, kind: ActionKind | str) -> bool:
        """Return ``True`` when the event is an echo, resetting the flag."""

        action = ActionKind(kind)
        if self._genuine[action]:
            return False
        self._genuine[action] = True
        return True

    def reset(self) -> None:
        for kind in ActionKind:
            self._genuine[kind] = True

    def snapshot(self) -> dict[str, bool]:
        return {kind.value: flag for kind, flag in self._genuine.items()}

    def __repr__(self) -> str:
        flags = ", ".join(f"{k}={v}" for k, v in self.snapshot().items())
        return f"PendingActionTracker({flags})"


__all__ = ["PendingActionTracker"]
