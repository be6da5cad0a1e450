"""
HTTP API handlers for DJ sessions
Every mutating call goes through the SessionCoordinator, so changes made over
HTTP are broadcast to WebSocket subscribers as well.
"""
import hashlib
import json
import logging
import time

from aiohttp import web

from . import config
from .errors import NotFound, ValidationError
from .gateway import COORDINATOR
from .utils import isoformat, utcnow

logger = logging.getLogger("mock_stream")

STARTED_AT = web.AppKey("started_at", float)


async def read_json(request: web.Request) -> dict:
    """Request body as a dict; an empty body reads as {}"""
    if not request.can_read_body:
        return {}
    try:
        data = await request.json()
    except ValueError:
        raise ValidationError("Request body must be valid JSON")
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def ok(**fields) -> web.Response:
    return web.json_response({"success": True, **fields})


def _found(result):
    if result is None:
        raise NotFound()
    return result


# ============================================================
# SERVICE
# ============================================================

async def api_health(request: web.Request) -> web.Response:
    return ok(
        service=config.SERVICE_NAME,
        version=config.VERSION,
        uptime=round(time.monotonic() - request.app[STARTED_AT], 3),
        timestamp=isoformat(utcnow()),
    )


async def api_endpoints(request: web.Request) -> web.Response:
    """List every registered route"""
    endpoints = sorted({
        f"{route.method} {route.resource.canonical}"
        for route in request.app.router.routes()
        if route.method not in ("HEAD", "OPTIONS") and route.resource is not None
    })
    return ok(service=config.SERVICE_NAME, endpoints=endpoints)


# ============================================================
# SESSION MANAGEMENT
# ============================================================

async def api_sessions(request: web.Request) -> web.Response:
    """List all DJ sessions with ETag caching"""
    sessions = [s.to_dict() for s in request.app[COORDINATOR].list_sessions()]
    body = {
        "success": True,
        "sessions": sessions,
        "total_sessions": len(sessions),
        "active_sessions": sum(1 for s in sessions if s["is_live"]),
    }

    content = json.dumps(body, sort_keys=True)
    etag = hashlib.md5(content.encode()).hexdigest()

    if request.headers.get("If-None-Match") == etag:
        return web.Response(status=304)

    response = web.json_response(body)
    response.headers["ETag"] = etag
    response.headers["Cache-Control"] = f"max-age={config.LIST_CACHE_MAX_AGE}"
    return response


async def api_session_create(request: web.Request) -> web.Response:
    data = await read_json(request)
    name = data.get("session_name")
    if not name:
        raise ValidationError("session_name is required")

    session = request.app[COORDINATOR].create_session(
        data.get("dj_id") or config.DEFAULT_DJ_ID, name
    )
    return ok(action="session_created", session=session.to_dict())


async def api_session_get(request: web.Request) -> web.Response:
    session = request.app[COORDINATOR].get_session(request.match_info["session_id"])
    return ok(session=session.to_dict())


async def api_session_update(request: web.Request) -> web.Response:
    data = await read_json(request)
    session = _found(request.app[COORDINATOR].update_session(request.match_info["session_id"], data))
    return ok(action="session_updated", session=session.to_dict())


async def api_session_end(request: web.Request) -> web.Response:
    session_id = request.match_info["session_id"]
    _found(request.app[COORDINATOR].end_session(session_id))
    return ok(action="session_ended", session_id=session_id)


async def api_session_stats(request: web.Request) -> web.Response:
    stats = request.app[COORDINATOR].stats(request.match_info["session_id"])
    return ok(stats=stats)


# ============================================================
# DECKS
# ============================================================

async def api_track_load(request: web.Request) -> web.Response:
    deck = request.match_info["deck"]
    data = await read_json(request)
    state = _found(request.app[COORDINATOR].load_track(request.match_info["session_id"], deck, data))
    return ok(action="track_loaded", deck=deck, track_data=state.to_dict())


async def api_playback(request: web.Request) -> web.Response:
    deck = request.match_info["deck"]
    data = await read_json(request)
    action = data.get("action")
    state = _found(request.app[COORDINATOR].playback_control(
        request.match_info["session_id"], deck, action,
        position=data.get("position"), speed=data.get("speed"),
    ))
    return ok(action=f"playback_{action}", deck=deck, deck_state=state.to_dict())


async def api_deck_update(request: web.Request) -> web.Response:
    deck = request.match_info["deck"]
    data = await read_json(request)
    state = _found(request.app[COORDINATOR].update_deck(request.match_info["session_id"], deck, data))
    return ok(action="deck_updated", deck=deck, deck_state=state.to_dict())


async def api_bpm(request: web.Request) -> web.Response:
    deck = request.match_info["deck"]
    data = await read_json(request)
    state = _found(request.app[COORDINATOR].update_bpm(
        request.match_info["session_id"], deck,
        bpm=data.get("bpm"),
        sync_enabled=data.get("sync_enabled"),
        beat_position=data.get("beat_position"),
    ))
    return ok(action="bpm_updated", deck=deck, bpm_data=state.bpm_state())


# ============================================================
# MIXER AND AUDIO LEVELS
# ============================================================

async def api_mixer_get(request: web.Request) -> web.Response:
    session = request.app[COORDINATOR].get_session(request.match_info["session_id"])
    return ok(mixer_state=session.mixer.to_dict())


async def api_mixer_update(request: web.Request) -> web.Response:
    data = await read_json(request)
    mixer = _found(request.app[COORDINATOR].update_mixer(request.match_info["session_id"], data))
    return ok(action="mixer_updated", mixer_state=mixer.to_dict())


async def api_audio_levels(request: web.Request) -> web.Response:
    """Real-time peak levels from the audio engine"""
    data = await read_json(request)
    _found(request.app[COORDINATOR].update_audio_levels(request.match_info["session_id"], data))
    return ok(action="audio_levels_updated")


def setup_routes(app: web.Application) -> None:
    sessions = "/api/dj/sessions"
    session = sessions + "/{session_id}"

    app.router.add_get("/api/health", api_health)
    app.router.add_get("/api/endpoints", api_endpoints)

    app.router.add_get(sessions, api_sessions)
    app.router.add_post(sessions, api_session_create)
    app.router.add_get(session, api_session_get)
    app.router.add_patch(session, api_session_update)
    app.router.add_delete(session, api_session_end)
    app.router.add_get(session + "/stats", api_session_stats)

    app.router.add_post(session + "/tracks/{deck}", api_track_load)
    app.router.add_post(session + "/playback/{deck}", api_playback)
    app.router.add_post(session + "/decks/{deck}", api_deck_update)
    app.router.add_post(session + "/bpm/{deck}", api_bpm)

    app.router.add_get(session + "/mixer", api_mixer_get)
    app.router.add_post(session + "/mixer", api_mixer_update)
    app.router.add_patch(session + "/mixer", api_mixer_update)
    app.router.add_post(session + "/audio-levels", api_audio_levels)
