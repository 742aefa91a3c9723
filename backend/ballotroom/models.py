from ballotroom import db
from datetime import datetime, timezone
import random

PHASE_VOTING = 'VOTING'
PHASE_LIVE = 'LIVE'
PHASE_CLOSED = 'CLOSED'
PHASES = (PHASE_VOTING, PHASE_LIVE, PHASE_CLOSED)

# A-Z without I, L, O plus 2-9: nothing that reads like 0/1 or another letter
ROOM_CODE_ALPHABET = 'ABCDEFGHJKMNPQRSTUVWXYZ23456789'
ROOM_CODE_LENGTH = 4

TABLES = ('rooms', 'participants', 'predictions', 'winners')


def _now():
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _iso(value):
    return value.isoformat() if value else None


def normalize_room_code(code):
    return (code or '').strip().upper()


def is_valid_room_code(code):
    code = normalize_room_code(code)
    return len(code) == ROOM_CODE_LENGTH and all(ch in ROOM_CODE_ALPHABET for ch in code)


def phase_rank(phase):
    return PHASES.index(phase) if phase in PHASES else -1


def generate_room_code(length=ROOM_CODE_LENGTH, attempts=50):
    """Generate a short room code not used by any existing room, or None."""
    for _ in range(attempts):
        code = ''.join(random.choices(ROOM_CODE_ALPHABET, k=length))
        if not Room.query.filter_by(code=code).first():
            return code
    return None


class Room(db.Model):
    __tablename__ = 'rooms'
    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(ROOM_CODE_LENGTH), unique=True, index=True, nullable=False)
    # Participant that created the room. Not a FK to avoid a creation cycle.
    host_id = db.Column(db.Integer, nullable=True)
    phase = db.Column(db.String(16), default=PHASE_VOTING, nullable=False)
    current_category_id = db.Column(db.String(128), nullable=True)
    created_at = db.Column(db.DateTime, default=_now, nullable=False)
    updated_at = db.Column(db.DateTime, default=_now, onupdate=_now, nullable=False)
    participants = db.relationship('Participant', back_populates='room')

    def to_dict(self):
        return {
            'id': self.id,
            'code': self.code,
            'host_id': self.host_id,
            'phase': self.phase,
            'current_category_id': self.current_category_id,
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }


class Participant(db.Model):
    __tablename__ = 'participants'
    id = db.Column(db.Integer, primary_key=True)
    room_id = db.Column(db.Integer, db.ForeignKey('rooms.id'), nullable=False, index=True)
    name = db.Column(db.String(64), nullable=False)
    is_host = db.Column(db.Boolean, default=False, nullable=False)
    joined_at = db.Column(db.DateTime, default=_now, nullable=False)
    room = db.relationship('Room', back_populates='participants')

    def to_dict(self):
        return {
            'id': self.id,
            'room_id': self.room_id,
            'name': self.name,
            'is_host': self.is_host,
            'joined_at': _iso(self.joined_at),
        }


class Prediction(db.Model):
    __tablename__ = 'predictions'
    __table_args__ = (
        db.UniqueConstraint('participant_id', 'category_id', name='uq_prediction_participant_category'),
    )
    id = db.Column(db.Integer, primary_key=True)
    participant_id = db.Column(db.Integer, db.ForeignKey('participants.id'), nullable=False, index=True)
    room_id = db.Column(db.Integer, db.ForeignKey('rooms.id'), nullable=False, index=True)
    category_id = db.Column(db.String(128), nullable=False)
    nominee_id = db.Column(db.String(256), nullable=False)
    updated_at = db.Column(db.DateTime, default=_now, onupdate=_now, nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'participant_id': self.participant_id,
            'room_id': self.room_id,
            'category_id': self.category_id,
            'nominee_id': self.nominee_id,
            'updated_at': _iso(self.updated_at),
        }


class Winner(db.Model):
    __tablename__ = 'winners'
    __table_args__ = (
        db.UniqueConstraint('room_id', 'category_id', name='uq_winner_room_category'),
    )
    id = db.Column(db.Integer, primary_key=True)
    room_id = db.Column(db.Integer, db.ForeignKey('rooms.id'), nullable=False, index=True)
    category_id = db.Column(db.String(128), nullable=False)
    nominee_id = db.Column(db.String(256), nullable=False)
    announced_at = db.Column(db.DateTime, default=_now, nullable=False)

    def to_dict(self):
        return {
            'id': self.id,
            'room_id': self.room_id,
            'category_id': self.category_id,
            'nominee_id': self.nominee_id,
            'announced_at': _iso(self.announced_at),
        }
