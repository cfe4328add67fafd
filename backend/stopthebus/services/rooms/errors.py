"""Error taxonomy for room operations.

Every failure a client can cause is a ``RoomError`` subclass. The gateway maps
``kind`` and ``status_code`` onto the transport; nothing here terminates the
process.
"""
from typing import Iterable, Optional


class RoomError(Exception):
    """Base class for all recoverable room failures."""
    status_code = 400
    default_message = 'Room operation failed'

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_dict(self):
        return {'error': self.kind, 'message': str(self)}


class InvalidInput(RoomError):
    default_message = 'Invalid input'


class RoomNotFound(RoomError):
    status_code = 404

    def __init__(self, code):
        self.code = code
        super().__init__(f"Room {code} not found")


class Forbidden(RoomError):
    status_code = 403
    default_message = 'Only the host may do that'


# ============ Phase mismatches ============

class AlreadyStarted(RoomError):
    status_code = 409
    default_message = 'The game has already started'


class GameNotStarted(RoomError):
    status_code = 409
    default_message = 'The game has not started yet'


class GameFinished(RoomError):
    status_code = 409
    default_message = 'The game is finished'


class RoundNotActive(RoomError):
    """The round is waiting for the host to advance."""
    status_code = 409
    default_message = 'The current round is already complete'


class NoCategories(RoomError):
    status_code = 409
    default_message = 'Set at least one category before starting'


# ============ Players and submissions ============

class DuplicatePlayer(RoomError):
    status_code = 409

    def __init__(self, name):
        self.name = name
        super().__init__(f"Player {name} is already in this room")


class UnknownPlayer(RoomError):
    status_code = 404

    def __init__(self, name):
        self.name = name
        super().__init__(f"Player {name} is not in this room")


class DuplicateSubmission(RoomError):
    status_code = 409

    def __init__(self, name):
        self.name = name
        super().__init__(f"{name} already submitted answers this round")


class IncompleteAnswers(RoomError):
    def __init__(self, missing: Iterable[str]):
        self.missing = list(missing)
        super().__init__(f"Missing answers for: {', '.join(self.missing)}")


class CodeGenerationFailed(RoomError):
    status_code = 503

    def __init__(self, attempts):
        self.attempts = attempts
        super().__init__(f"Could not allocate a room code after {attempts} attempts")
