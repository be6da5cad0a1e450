"""
Session coordinator: the only code path that mutates DJ session state

Each command validates its input, applies it to the SessionStore and
broadcasts exactly one event to the session's subscribers. Commands against
an unknown session are no-ops that return None; the HTTP layer turns that
into a 404, the realtime gateway ignores it.

Subscribers are duck-typed connections exposing:
    session_id   the session the connection is bound to (or None)
    is_open      whether the channel can still accept messages
    send(text)   queue a serialized message without blocking; returns bool
"""
import json
import logging
from typing import List, Optional

from .errors import InvalidAction, NoTrackLoaded, ValidationError
from .models import AudioLevels, Deck, Mixer, Session, Track, apply_patch, deck_key, validate
from .schemas import PlaybackRequest, TrackLoadRequest
from .state import ConnectionRegistry, SessionStore
from .utils import generate_track_id, isoformat, utcnow

logger = logging.getLogger("mock_stream")

PLAYBACK_ACTIONS = ("play", "pause", "stop", "cue", "sync")
TRACK_REQUIRED_ACTIONS = ("play", "pause", "cue")


class SessionCoordinator:

    def __init__(self, store: SessionStore = None, registry: ConnectionRegistry = None):
        self.store = store if store is not None else SessionStore()
        self.registry = registry if registry is not None else ConnectionRegistry()

    # ============================================================
    # QUERIES
    # ============================================================

    def get_session(self, session_id) -> Session:
        return self.store.get(session_id)

    def list_sessions(self) -> List[Session]:
        return self.store.list()

    def stats(self, session_id) -> dict:
        """Aggregated stats snapshot; read-only, raises NotFound"""
        session = self.store.get(session_id)
        uptime = session.uptime_seconds()
        return {
            "session_id": session.id,
            "current_time": isoformat(utcnow()),
            "is_live": session.is_live,
            "uptime_seconds": uptime,
            "deck_a_track": session.deck_a.track.to_dict() if session.deck_a.track else None,
            "deck_b_track": session.deck_b.track.to_dict() if session.deck_b.track else None,
            "mixer_state": session.mixer.to_dict(),
            "audio_levels": session.audio_levels.to_dict(),
            "performance": {
                "current_listeners": session.stats.current_listeners,
                "peak_listeners": session.stats.peak_listeners,
                "total_tracks_played": session.stats.total_tracks_played,
            },
        }

    # ============================================================
    # BROADCAST
    # ============================================================

    def broadcast(self, session_id, message: dict) -> int:
        """Fan a message out to every open subscriber; returns delivery count"""
        subscribers = self.registry.connections_for(session_id)
        if not subscribers:
            return 0

        payload = json.dumps(message)
        delivered = 0
        for connection in subscribers:
            if not connection.is_open:
                continue
            if connection.send(payload):
                delivered += 1
        return delivered

    # ============================================================
    # SESSION LIFECYCLE
    # ============================================================

    def create_session(self, dj_id: str, name: str) -> Session:
        if not isinstance(name, str) or not name.strip():
            raise ValidationError("session_name is required")
        if not isinstance(dj_id, str) or not dj_id.strip():
            raise ValidationError("dj_id must be a non-empty string")
        session = self.store.create(dj_id, name)
        logger.info("🎧 Created DJ session: %s (%s)", name, session.id)
        return session

    def update_session(self, session_id, fields: dict) -> Optional[Session]:
        if session_id not in self.store:
            return None
        session = self.store.update(session_id, fields)
        self.broadcast(session_id, {"type": "session_updated", "data": session.to_dict()})
        logger.info("🎧 Updated DJ session %s", session_id)
        return session

    def end_session(self, session_id) -> Optional[Session]:
        session = self.store.find(session_id)
        if session is None:
            return None

        session.is_live = False
        session.ended_at = session.touch()
        session.stats.session_duration = session.uptime_seconds()
        self.broadcast(session_id, {
            "type": "session_ended",
            "data": {"session_id": session_id, "ended_at": isoformat(session.ended_at)},
        })

        # Nothing can be sent to the session after this point
        self.store.delete(session_id)
        for connection in self.registry.drop(session_id):
            if connection.session_id == session_id:
                connection.session_id = None

        logger.info("🛑 Ended DJ session %s", session_id)
        return session

    # ============================================================
    # SUBSCRIPTIONS
    # ============================================================

    def join(self, session_id, connection) -> Optional[Session]:
        """
        Bind a connection to a session, leaving any previous one first.
        The current state goes to the joining connection only; joining an
        unknown session subscribes silently.
        """
        if connection.session_id is not None and connection.session_id != session_id:
            self.leave(connection)

        self.registry.subscribe(session_id, connection)
        connection.session_id = session_id

        session = self.store.find(session_id)
        if session is None:
            logger.debug("join_session for unknown session %s", session_id)
            return None

        self._count_listeners(session)
        connection.send(json.dumps({"type": "session_state", "data": session.to_dict()}))
        logger.info("🎧 Client connected to DJ session %s", session_id)
        return session

    def leave(self, connection) -> None:
        """Unbind a connection from its session; idempotent"""
        session_id = connection.session_id
        if session_id is None:
            return
        self.registry.unsubscribe(session_id, connection)
        connection.session_id = None

        session = self.store.find(session_id)
        if session is not None:
            self._count_listeners(session)
        logger.info("🎧 Client disconnected from DJ session %s", session_id)

    def _count_listeners(self, session: Session) -> None:
        # Derived from the registry; not a command, so no broadcast or touch
        stats = session.stats
        stats.current_listeners = self.registry.count(session.id)
        stats.peak_listeners = max(stats.peak_listeners, stats.current_listeners)

    # ============================================================
    # REALTIME STATE
    # ============================================================

    def update_audio_levels(self, session_id, levels: dict) -> Optional[AudioLevels]:
        session = self.store.find(session_id)
        if session is None:
            return None
        apply_patch(session.audio_levels, levels, AudioLevels.PATCH)
        session.audio_levels.updated_at = session.touch()
        self.broadcast(session_id, {"type": "audio_levels", "data": session.audio_levels.to_dict()})
        return session.audio_levels

    def update_mixer(self, session_id, partial: dict) -> Optional[Mixer]:
        session = self.store.find(session_id)
        if session is None:
            return None
        apply_patch(session.mixer, partial, Mixer.PATCH)
        session.touch()
        self.broadcast(session_id, {"type": "mixer_updated", "data": session.mixer.to_dict()})
        logger.info("🎛️ Mixer updated in session %s", session_id)
        return session.mixer

    def update_deck(self, session_id, label: str, partial: dict) -> Optional[Deck]:
        deck_key(label)
        session = self.store.find(session_id)
        if session is None:
            return None
        deck = session.deck(label)
        apply_patch(deck, partial, Deck.PATCH)
        session.touch()
        self.broadcast(session_id, {"type": "deck_updated", "deck": label, "data": deck.to_dict()})
        return deck

    def load_track(self, session_id, label: str, track_fields: dict) -> Optional[Deck]:
        deck_key(label)
        request = validate(TrackLoadRequest, track_fields)

        session = self.store.find(session_id)
        if session is None:
            return None

        deck = session.deck(label)
        if deck.playing:
            deck.playing = False
        deck.track = Track(
            id=request.track_id or generate_track_id(),
            title=request.track_title or "Unknown Track",
            artist=request.track_artist or "Unknown Artist",
            duration=request.track_duration or 0,
            loaded_at=utcnow(),
        )
        deck.position = 0.0
        deck.bpm = request.bpm
        session.stats.total_tracks_played += 1
        session.touch()

        self.broadcast(session_id, {"type": "track_loaded", "deck": label, "data": deck.to_dict()})
        logger.info('🎵 Loaded "%s" to deck %s in session %s', deck.track.title, label, session_id)
        return deck

    def playback_control(self, session_id, label: str, action: str,
                         position=None, speed=None) -> Optional[Deck]:
        deck_key(label)
        if action not in PLAYBACK_ACTIONS:
            raise InvalidAction()
        options = validate(PlaybackRequest, {"action": action, "position": position, "speed": speed})
        position, speed = options.position, options.speed

        session = self.store.find(session_id)
        if session is None:
            return None

        deck = session.deck(label)
        if deck.track is None and action in TRACK_REQUIRED_ACTIONS:
            raise NoTrackLoaded()

        if action == "play":
            deck.playing = True
            if speed is not None:
                deck.speed = speed
        elif action == "pause":
            deck.playing = False
        elif action == "stop":
            deck.playing = False
            deck.position = 0.0
        elif action == "cue":
            deck.playing = False
            if position is not None:
                deck.position = position
        elif action == "sync":
            deck.synced = not deck.synced
        session.touch()

        self.broadcast(session_id, {
            "type": "playback_control",
            "deck": label,
            "action": action,
            "data": deck.to_dict(),
        })
        logger.info("🎵 %s on deck %s in session %s", action.upper(), label, session_id)
        return deck

    def update_bpm(self, session_id, label: str, bpm=None, sync_enabled=None,
                   beat_position=None) -> Optional[Deck]:
        deck_key(label)
        patch = {}
        if bpm is not None:
            patch["bpm"] = bpm
        if sync_enabled is not None:
            patch["synced"] = sync_enabled
        if beat_position is not None:
            patch["beat_position"] = beat_position

        session = self.store.find(session_id)
        if session is None:
            return None

        deck = session.deck(label)
        apply_patch(deck, patch, Deck.PATCH)
        session.touch()
        self.broadcast(session_id, {"type": "bpm_updated", "deck": label, "data": deck.bpm_state()})
        logger.info("🎵 BPM updated for deck %s: %s BPM", label, deck.bpm)
        return deck
