"""
Error taxonomy shared by the server and the client core.

Every error carries the HTTP status the API answers with, and the API puts
the class name in the ``code`` field of the JSON error body so the client
can raise the same type again.
"""


class BallotRoomError(Exception):
    """Base class for all ballot room errors."""
    status_code = 400

    def __init__(self, message=None):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__

    @property
    def code(self) -> str:
        return self.__class__.__name__

    def to_dict(self):
        return {'error': self.message, 'code': self.code}


# ============ Lookup ============

class RoomNotFound(BallotRoomError):
    status_code = 404
    room_ref = None

    def __init__(self, room_ref=None):
        self.room_ref = room_ref
        super().__init__(f"Room {room_ref} not found" if room_ref is not None else "Room not found")


class ParticipantNotFound(BallotRoomError):
    status_code = 404
    participant_id = None

    def __init__(self, participant_id=None):
        self.participant_id = participant_id
        super().__init__(f"Participant {participant_id} not found")


# ============ Room creation ============

class CodeTaken(BallotRoomError):
    status_code = 409
    room_code = None

    def __init__(self, code=None):
        self.room_code = code
        super().__init__(f"Room code {code} is already taken")


class InvalidCodeFormat(BallotRoomError):
    status_code = 400
    room_code = None

    def __init__(self, code=None):
        self.room_code = code
        super().__init__(
            f"Invalid room code {code!r}: use 4 characters from A-Z (no O, I, L) and digits 2-9"
        )


# ============ Catalog ============

class InvalidCategory(BallotRoomError):
    """Category or nominee is not part of the reference catalog."""
    status_code = 400


# ============ Role / phase ============

class PhaseViolation(BallotRoomError):
    """Mutation not allowed by the room's current phase or the caller's role."""
    status_code = 409


class PhaseClosed(PhaseViolation):
    """Voting is over for this room."""
    status_code = 409


class RoleViolation(PhaseViolation):
    """Host-only action attempted by a guest, or guest-only action by the host."""
    status_code = 403


# ============ Client side ============

class StoreError(BallotRoomError):
    """Transport failure or an error response the client cannot map."""
    status_code = 502
    status = None

    def __init__(self, message=None, status=None):
        self.status = status
        super().__init__(message)


class LoadFailed(BallotRoomError):
    status_code = 503


class WriteFailed(BallotRoomError):
    status_code = 503


ERRORS_BY_CODE = {
    cls.__name__: cls for cls in (
        RoomNotFound, ParticipantNotFound, CodeTaken, InvalidCodeFormat,
        InvalidCategory, PhaseViolation, PhaseClosed, RoleViolation,
    )
}


def error_from_response(status, body):
    """Rebuild the error an API response describes.

    The server's message is kept as is; attributes only the raising side
    knew (``room_ref``, ``room_code``...) fall back to their class defaults.
    """
    body = body if isinstance(body, dict) else {}
    message = body.get('error') or f"Request failed with status {status}"
    cls = ERRORS_BY_CODE.get(body.get('code'))
    if cls is None:
        return StoreError(message, status=status)
    err = cls.__new__(cls)
    BallotRoomError.__init__(err, message)
    return err
