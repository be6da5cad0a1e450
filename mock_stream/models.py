"""
DJ session data model

Each patchable entity names its pydantic patch schema in PATCH; apply_patch
merges only the fields a client actually sent.
"""
import logging
from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Any, Dict, Optional, Type

from pydantic import BaseModel
from pydantic import ValidationError as SchemaError

from .errors import InvalidDeck, ValidationError
from .schemas import AudioLevelsPatch, DeckPatch, MixerPatch, SessionPatch
from .utils import isoformat, utcnow

logger = logging.getLogger("mock_stream")

DECK_KEYS = {"A": "deck_a", "B": "deck_b"}
EQ_BANDS = ("low", "mid", "high")


def deck_key(label: str) -> str:
    """Map a deck label ("A"/"B") to its session attribute"""
    try:
        return DECK_KEYS[label]
    except (KeyError, TypeError):
        raise InvalidDeck()


def validate(schema: Type[BaseModel], data: Any) -> BaseModel:
    """Validate a payload, mapping schema errors to a 400 ValidationError"""
    try:
        return schema.model_validate(data)
    except SchemaError as e:
        first = e.errors()[0]
        where = ".".join(str(part) for part in first["loc"]) or "payload"
        raise ValidationError(f"{where}: {first['msg']}")


def apply_patch(target, data: Any, schema: Type[BaseModel]) -> Dict[str, Any]:
    """
    Validate `data` against a patch schema and merge it into `target`.

    Unknown keys are ignored. Nothing is written unless the whole payload
    validates. Returns the fields that were applied.
    """
    patch = validate(schema, data)
    ignored = set(data) - set(schema.model_fields)
    if ignored:
        logger.debug("Ignoring unknown fields %s on %s", sorted(ignored), type(target).__name__)

    clean = patch.model_dump(exclude_unset=True)
    for key, value in clean.items():
        current = getattr(target, key)
        if isinstance(current, dict) and isinstance(value, dict):
            current.update(value)
        else:
            setattr(target, key, value)
    return clean


# ============================================================
# ENTITIES
# ============================================================

@dataclass
class Track:
    id: str
    title: str = "Unknown Track"
    artist: str = "Unknown Artist"
    duration: float = 0
    loaded_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "artist": self.artist,
            "duration": self.duration,
            "loaded_at": isoformat(self.loaded_at),
        }


@dataclass
class Deck:
    PATCH = DeckPatch

    track: Optional[Track] = None
    playing: bool = False
    position: float = 0.0
    volume: float = 0.8
    eq: Dict[str, float] = field(default_factory=lambda: dict.fromkeys(EQ_BANDS, 0.0))
    bpm: Optional[float] = None
    synced: bool = False
    beat_position: Optional[float] = None
    speed: float = 1.0

    def to_dict(self) -> dict:
        return {
            "track": self.track.to_dict() if self.track else None,
            "playing": self.playing,
            "position": self.position,
            "volume": self.volume,
            "eq": dict(self.eq),
            "bpm": self.bpm,
            "synced": self.synced,
            "beat_position": self.beat_position,
            "speed": self.speed,
        }

    def bpm_state(self) -> dict:
        return {"bpm": self.bpm, "synced": self.synced, "beat_position": self.beat_position}


@dataclass
class Mixer:
    PATCH = MixerPatch

    crossfader: float = 0.0
    master_volume: float = 0.8
    channel_a_volume: float = 0.8
    channel_b_volume: float = 0.8
    sync_enabled: bool = False

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass
class AudioLevels:
    PATCH = AudioLevelsPatch

    master_left: float = 0.0
    master_right: float = 0.0
    channel_a_left: float = 0.0
    channel_a_right: float = 0.0
    channel_b_left: float = 0.0
    channel_b_right: float = 0.0
    updated_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        data = {name: getattr(self, name) for name in AudioLevelsPatch.model_fields}
        data["updated_at"] = isoformat(self.updated_at)
        return data


@dataclass
class SessionStats:
    current_listeners: int = 0
    peak_listeners: int = 0
    total_tracks_played: int = 0
    session_duration: int = 0

    def to_dict(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass
class Session:
    """One live DJ broadcast"""

    PATCH = SessionPatch

    id: str
    dj_id: str
    session_name: str
    started_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    ended_at: Optional[datetime] = None
    is_live: bool = False
    is_recording: bool = False
    deck_a: Deck = field(default_factory=Deck)
    deck_b: Deck = field(default_factory=Deck)
    mixer: Mixer = field(default_factory=Mixer)
    audio_levels: AudioLevels = field(default_factory=AudioLevels)
    stats: SessionStats = field(default_factory=SessionStats)

    def deck(self, label: str) -> Deck:
        return getattr(self, deck_key(label))

    def touch(self) -> datetime:
        """Refresh updated_at, never moving it backwards"""
        self.updated_at = max(self.updated_at, utcnow())
        return self.updated_at

    def uptime_seconds(self) -> int:
        end = self.ended_at or utcnow()
        return max(0, int((end - self.started_at).total_seconds()))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "dj_id": self.dj_id,
            "session_name": self.session_name,
            "started_at": isoformat(self.started_at),
            "updated_at": isoformat(self.updated_at),
            "ended_at": isoformat(self.ended_at),
            "is_live": self.is_live,
            "is_recording": self.is_recording,
            "deck_a": self.deck_a.to_dict(),
            "deck_b": self.deck_b.to_dict(),
            "mixer": self.mixer.to_dict(),
            "audio_levels": self.audio_levels.to_dict(),
            "stats": self.stats.to_dict(),
        }
