"""Error taxonomy shared by the HTTP and Socket.IO surfaces.

Every error carries a stable ``kind`` for clients to branch on and a
human-readable message. None of them are fatal to the process.
"""


class GameError(Exception):
    kind = 'GameError'
    status_code = 400
    default_message = 'Request could not be completed'

    def __init__(self, message=None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_dict(self):
        return {'error': self.message, 'kind': self.kind}


class NotFound(GameError):
    kind = 'NotFound'
    status_code = 404
    default_message = 'Not found'


class Forbidden(GameError):
    kind = 'Forbidden'
    status_code = 403
    default_message = 'Not authorized'


class Unauthorized(GameError):
    kind = 'Unauthorized'
    status_code = 401
    default_message = 'Login required'


class InvalidState(GameError):
    kind = 'InvalidState'
    status_code = 409
    default_message = 'Transition not allowed in the current game state'


class AlreadyStarted(InvalidState):
    kind = 'AlreadyStarted'
    default_message = 'Game has already started'


class AlreadyEnded(InvalidState):
    kind = 'AlreadyEnded'
    default_message = 'Game has already ended'


class Full(GameError):
    kind = 'Full'
    status_code = 409
    default_message = 'Game is full'


class DuplicateParticipant(GameError):
    kind = 'DuplicateParticipant'
    status_code = 409
    default_message = 'You already joined this game'


class NotInGame(GameError):
    kind = 'NotInGame'
    status_code = 403
    default_message = 'You are not in this game'


class ValidationError(GameError):
    kind = 'ValidationError'
    status_code = 400
    default_message = 'Missing or invalid field'


class Unavailable(GameError):
    """A collaborator (catalog, history storage) failed; safe to retry."""

    kind = 'Unavailable'
    status_code = 503
    default_message = 'Service temporarily unavailable'
