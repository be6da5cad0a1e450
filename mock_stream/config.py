"""
Server configuration from environment variables
"""
import os

PORT = int(os.environ.get("PORT", 5001))
SERVER_HOST = os.environ.get("SERVER_HOST", "0.0.0.0")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# Frontend origins allowed to call the API from a browser
CORS_ORIGINS = [
    origin.strip()
    for origin in os.environ.get(
        "CORS_ORIGINS",
        "http://localhost:3000,http://127.0.0.1:3000,http://0.0.0.0:3000,"
        "https://one-stop-radio-frontend-production.up.railway.app",
    ).split(",")
    if origin.strip()
]

DEFAULT_DJ_ID = os.environ.get("DEFAULT_DJ_ID", "demo-dj")

# Outbound messages buffered per WebSocket before new ones are dropped
WS_SEND_QUEUE_SIZE = int(os.environ.get("WS_SEND_QUEUE_SIZE", 256))

LIST_CACHE_MAX_AGE = int(os.environ.get("LIST_CACHE_MAX_AGE", 5))

SERVICE_NAME = "OneStopRadio Mock Stream API"
VERSION = "1.0.0"
