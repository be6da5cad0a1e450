"""Pydantic schemas for partial updates and command payloads.

Each patch model is the whitelist for one entity: unknown keys are ignored,
and model_dump(exclude_unset=True) yields only the fields a client sent.
"""
from typing import Annotated, Literal, Optional, Union

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    StrictBool,
    StringConstraints,
)


def _finite_number(value):
    """Reject bools and strings; huge JSON integers are out of range"""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError("must be a number")
    try:
        return float(value)
    except OverflowError:
        raise ValueError("number is out of range")


def _clamp_level(value: float) -> float:
    return min(1.0, max(0.0, value))


Number = Annotated[float, BeforeValidator(_finite_number)]
NonNegative = Annotated[Number, Field(ge=0)]
Positive = Annotated[Number, Field(gt=0)]
Unit = Annotated[Number, Field(ge=0, le=1)]
Bipolar = Annotated[Number, Field(ge=-1, le=1)]
# Peak meters are best-effort: clamp rather than reject
Level = Annotated[Number, AfterValidator(_clamp_level)]
Text = Annotated[str, StringConstraints(strict=True, strip_whitespace=True, min_length=1)]


class Schema(BaseModel):
    model_config = ConfigDict(extra="ignore", allow_inf_nan=False)


class SessionPatch(Schema):
    session_name: Text = None
    dj_id: Text = None
    is_live: StrictBool = None
    is_recording: StrictBool = None


class EqPatch(Schema):
    low: Bipolar = None
    mid: Bipolar = None
    high: Bipolar = None


class DeckPatch(Schema):
    """track is not patchable; it changes only through load track"""

    playing: StrictBool = None
    synced: StrictBool = None
    position: NonNegative = None
    volume: Unit = None
    eq: EqPatch = None
    bpm: Optional[Positive] = None
    beat_position: Optional[Number] = None
    speed: Positive = None


class MixerPatch(Schema):
    crossfader: Bipolar = None
    master_volume: Unit = None
    channel_a_volume: Unit = None
    channel_b_volume: Unit = None
    sync_enabled: StrictBool = None


class AudioLevelsPatch(Schema):
    master_left: Level = None
    master_right: Level = None
    channel_a_left: Level = None
    channel_a_right: Level = None
    channel_b_left: Level = None
    channel_b_right: Level = None


class TrackLoadRequest(Schema):
    track_id: Optional[Union[str, int]] = None
    track_title: Optional[str] = None
    track_artist: Optional[str] = None
    track_duration: Optional[NonNegative] = None
    bpm: Optional[Positive] = None


class PlaybackRequest(Schema):
    action: Literal["play", "pause", "stop", "cue", "sync"]
    position: Optional[NonNegative] = None
    speed: Optional[Positive] = None
