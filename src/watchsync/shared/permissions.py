"""Permission gate: mask predicates and the control affordances they imply."""

from __future__ import annotations

from dataclasses import dataclass

from watchsync.protocol.messages import PermissionMask


def _has_bit(mask: int, bit: int) -> bool:
    return (int(mask) & int(bit)) == int(bit)


def is_controllable(mask: int) -> bool:
    """Whether the client may originate seek/play/pause."""

    return _has_bit(mask, PermissionMask.CONTROLLABLE)


def is_changer(mask: int) -> bool:
    """Whether the client may change the room's source or captions."""

    return _has_bit(mask, PermissionMask.CHANGER)


@dataclass(frozen=True)
class ControlAffordances:
    """Which playback controls the presentation layer should expose."""

    seek_bar: bool
    play_pause: bool
    forward_skip: bool
    caption_picker: bool
    source_changer: bool

    def hidden(self) -> tuple[str, ...]:
        return tuple(name for name, visible in self.as_dict().items() if not visible)

    def as_dict(self) -> dict[str, bool]:
        return {
            "seek_bar": self.seek_bar,
            "play_pause": self.play_pause,
            "forward_skip": self.forward_skip,
            "caption_picker": self.caption_picker,
            "source_changer": self.source_changer,
        }


def project_affordances(mask: int) -> ControlAffordances:
    """Project a permission mask onto control visibility.

    Timeline controls follow ``CONTROLLABLE``. The local caption picker stays
    visible for everyone because a local caption file only affects this
    client's view.
    """

    controllable = is_controllable(mask)
    return ControlAffordances(
        seek_bar=controllable,
        play_pause=controllable,
        forward_skip=controllable,
        caption_picker=True,
        source_changer=is_changer(mask),
    )


__all__ = ["ControlAffordances", "is_changer", "is_controllable", "project_affordances"]
