#!/usr/bin/env python3
"""
OneStopRadio mock stream server - entry point
HTTP API + WebSocket for real-time DJ session collaboration
"""
import asyncio
import logging
import socket
import sys
import time

from aiohttp import web

from mock_stream import config
from mock_stream.api import STARTED_AT, setup_routes
from mock_stream.coordinator import SessionCoordinator
from mock_stream.errors import MockStreamError
from mock_stream.gateway import COORDINATOR, ws_dj_session
from mock_stream.state import ConnectionRegistry, SessionStore

logger = logging.getLogger("mock_stream")

CORS_METHODS = "GET, POST, PUT, PATCH, DELETE, OPTIONS"
CORS_HEADERS = "Content-Type, Authorization"


def error_body(error: str, status: int, **extra) -> web.Response:
    return web.json_response({"success": False, "error": error, **extra}, status=status)


@web.middleware
async def error_middleware(request, handler):
    """Convert every failure into a {success: false, error} JSON body"""
    try:
        return await handler(request)
    except MockStreamError as e:
        return error_body(e.message, e.status)
    except web.HTTPNotFound:
        return error_body(
            "Endpoint not found", 404,
            message=f"{request.method} {request.path} is not a valid endpoint",
            available_endpoints="/api/endpoints",
        )
    except web.HTTPMethodNotAllowed as e:
        return error_body("Method not allowed", e.status, message=f"{request.method} {request.path}")
    except web.HTTPException:
        raise
    except Exception as e:
        logger.exception(f"❌ Server error on {request.method} {request.path}")
        if "ws" in request:
            # Already upgraded; an HTTP body would corrupt the WebSocket stream
            raise
        return error_body("Internal server error", 500, message=str(e))


@web.middleware
async def cors_middleware(request, handler):
    """Allow the configured frontend origins to call the API from a browser"""
    origin = request.headers.get("Origin")
    allowed = origin is not None and origin in config.CORS_ORIGINS

    if request.method == "OPTIONS" and "Access-Control-Request-Method" in request.headers:
        response = web.Response(status=204 if allowed else 403)
    else:
        response = await handler(request)

    if allowed and not response.prepared:
        response.headers["Access-Control-Allow-Origin"] = origin
        response.headers["Access-Control-Allow-Credentials"] = "true"
        response.headers["Access-Control-Allow-Methods"] = CORS_METHODS
        response.headers["Access-Control-Allow-Headers"] = CORS_HEADERS
        response.headers["Vary"] = "Origin"
    return response


def fail_fast(loop, context):
    """Shared session state may be corrupt after an unhandled fault; stop"""
    logger.critical(f"❌ Unhandled fault: {context.get('message')}", exc_info=context.get("exception"))
    loop.stop()


async def install_fail_fast(app):
    asyncio.get_running_loop().set_exception_handler(fail_fast)


def create_app(coordinator: SessionCoordinator = None, store: SessionStore = None,
               registry: ConnectionRegistry = None) -> web.Application:
    """Create and configure the aiohttp application"""
    app = web.Application(middlewares=[cors_middleware, error_middleware])
    if coordinator is None:
        coordinator = SessionCoordinator(store, registry)
    app[COORDINATOR] = coordinator
    app[STARTED_AT] = time.monotonic()

    setup_routes(app)

    # WebSocket for real-time DJ sessions
    app.router.add_get("/ws", ws_dj_session)

    logger.info("🎵 Mock stream server ready • DJ sessions • WebSocket enabled")
    return app


def get_local_ip():
    """Get local network IP address"""
    try:
        s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        s.connect(("8.8.8.8", 80))
        ip = s.getsockname()[0]
        s.close()
        return ip
    except OSError:
        return "localhost"


def main():
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )
    app = create_app()
    app.on_startup.append(install_fail_fast)

    logger.info(f"🚀 Starting server on {config.SERVER_HOST}:{config.PORT}")
    logger.info(f"💡 Access at: http://{get_local_ip()}:{config.PORT}")

    try:
        web.run_app(app, host=config.SERVER_HOST, port=config.PORT)
    except Exception:
        logger.exception("❌ Server terminated after an unhandled fault")
        sys.exit(1)
    logger.info("🛑 Shutting down mock stream server")


if __name__ == "__main__":
    main()
