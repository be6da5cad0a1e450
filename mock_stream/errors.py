"""
Error types shared by the HTTP API and the realtime gateway
"""


class MockStreamError(Exception):
    """Base error; `status` is the HTTP status it maps to"""
    status = 500
    message = "Internal server error"

    def __init__(self, message: str = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class NotFound(MockStreamError):
    status = 404
    message = "DJ session not found"


class ValidationError(MockStreamError):
    status = 400
    message = "Invalid request"


class InvalidDeck(ValidationError):
    message = 'Deck must be "A" or "B"'


class InvalidAction(ValidationError):
    message = "Action must be one of: play, pause, stop, cue, sync"


class NoTrackLoaded(ValidationError):
    message = "No track loaded on this deck"
