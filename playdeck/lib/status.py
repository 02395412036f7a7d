# Playdeck
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""Point-in-time playback status, as handed to the UI layer."""

from dataclasses import dataclass
from enum import Enum


class PlaybackState(Enum):
    STOPPED = "stopped"
    PAUSED = "paused"
    PLAYING = "playing"


class RepeatMode(Enum):
    NONE = "none"
    LOOP_ALL = "loop_all"
    REPEAT_CURRENT = "repeat_current"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class InfoButton:
    """Auxiliary indicator next to the transport controls (e.g. "authorize")."""

    text: str = ""
    tooltip: str = ""
    color: str = ""
    command: str = ""

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "tooltip": self.tooltip,
            "color": self.color,
            "command": self.command,
        }


@dataclass(frozen=True)
class StatusSnapshot:
    is_connected: bool
    state: PlaybackState = PlaybackState.STOPPED
    track: object | None = None  # entities.Track
    volume: float = 0.0
    is_shuffle: bool | None = None
    repeat: RepeatMode = RepeatMode.UNKNOWN
    button: InfoButton | None = None
    player_id: str = ""

    @property
    def is_mute(self) -> bool:
        return self.volume <= 0.0

    def to_dict(self) -> dict:
        track = None
        if self.track is not None:
            track = {
                "id": self.track.id,
                "name": self.track.name,
                "description": self.track.description,
            }
        return {
            "player": self.player_id,
            "is_connected": self.is_connected,
            "state": self.state.value,
            "track": track,
            "volume": self.volume,
            "is_mute": self.is_mute,
            "is_shuffle": self.is_shuffle,
            "repeat": self.repeat.value,
            "button": self.button.to_dict() if self.button else None,
        }


def clamp_volume(value) -> float:
    """Coerce *value* into [0.0, 1.0]; garbage becomes full volume."""
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 1.0
    if value != value:  # NaN
        return 1.0
    return max(0.0, min(1.0, value))
