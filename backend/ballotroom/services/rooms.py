from flask import current_app
from sqlalchemy.exc import IntegrityError

from ballotroom import db
from ballotroom.catalog import get_catalog
from ballotroom.exceptions import (
    CodeTaken,
    InvalidCategory,
    InvalidCodeFormat,
    ParticipantNotFound,
    PhaseClosed,
    PhaseViolation,
    RoleViolation,
    RoomNotFound,
)
from ballotroom.models import (
    PHASE_CLOSED,
    PHASE_VOTING,
    PHASES,
    Participant,
    Prediction,
    Room,
    Winner,
    _now,
    generate_room_code,
    is_valid_room_code,
    normalize_room_code,
    phase_rank,
)
from ballotroom.services.scoring import compute_leaderboard
from ballotroom.socketio_events import notify_change


def catalog():
    return get_catalog(current_app.config.get('CATALOG_PATH') or None)


# ---- Queries ----

def get_room(room_id: int) -> Room:
    room = Room.query.get(room_id)
    if not room:
        raise RoomNotFound(room_id)
    return room


def get_room_by_code(code: str) -> Room:
    room = Room.query.filter_by(code=normalize_room_code(code)).first()
    if not room:
        raise RoomNotFound(normalize_room_code(code))
    return room


def list_participants(room_id: int):
    return Participant.query.filter_by(room_id=room_id).order_by(Participant.joined_at, Participant.id).all()


def list_predictions(room_id: int, participant_id=None):
    q = Prediction.query.filter_by(room_id=room_id)
    if participant_id is not None:
        q = q.filter_by(participant_id=participant_id)
    return q.order_by(Prediction.id).all()


def list_winners(room_id: int):
    return Winner.query.filter_by(room_id=room_id).order_by(Winner.announced_at, Winner.id).all()


def get_leaderboard(room_id: int):
    get_room(room_id)
    return compute_leaderboard(
        [p.to_dict() for p in list_participants(room_id)],
        [p.to_dict() for p in list_predictions(room_id)],
        [w.to_dict() for w in list_winners(room_id)],
    )


# ---- Compound operations ----

def create_room(host_name: str, custom_code=None):
    """Create a room and its host participant in one transaction."""
    if custom_code:
        code = normalize_room_code(custom_code)
        if not is_valid_room_code(code):
            raise InvalidCodeFormat(custom_code)
        if Room.query.filter_by(code=code).first():
            raise CodeTaken(code)
    else:
        code = generate_room_code(attempts=int(current_app.config.get('ROOM_CODE_ATTEMPTS', 50)))
        if not code:
            raise CodeTaken('(generated)')

    room = Room(code=code, phase=PHASE_VOTING)
    db.session.add(room)
    try:
        db.session.flush()
        host = Participant(room_id=room.id, name=host_name, is_host=True)
        db.session.add(host)
        db.session.flush()
        room.host_id = host.id
        db.session.commit()
    except IntegrityError:
        # Lost a race for the same code
        db.session.rollback()
        raise CodeTaken(code)
    current_app.logger.info(f"[room-create] room={room.id} code={room.code} host={host.id}")
    return {'roomId': room.id, 'roomCode': room.code, 'hostId': host.id}


def join_room(room_code: str, participant_name: str, participant_id=None):
    """Join by code. A known participant id for this room is a rejoin, not a new record."""
    room = get_room_by_code(room_code)
    if participant_id is not None:
        existing = Participant.query.filter_by(id=participant_id, room_id=room.id).first()
        if existing:
            current_app.logger.info(f"[room-rejoin] room={room.id} participant={existing.id}")
            return {'roomId': room.id, 'participantId': existing.id, 'phase': room.phase, 'isRejoin': True}

    participant = Participant(room_id=room.id, name=participant_name, is_host=False)
    db.session.add(participant)
    db.session.commit()
    current_app.logger.info(f"[room-join] room={room.id} participant={participant.id}")
    notify_change(room.id, 'participants')
    return {'roomId': room.id, 'participantId': participant.id, 'phase': room.phase, 'isRejoin': False}


# ---- Authorization ----

def _member(room: Room, participant_id) -> Participant:
    participant = Participant.query.filter_by(id=participant_id, room_id=room.id).first() if participant_id is not None else None
    if not participant:
        raise ParticipantNotFound(participant_id)
    return participant


def _require_host(room: Room, participant_id) -> Participant:
    participant = _member(room, participant_id)
    if not participant.is_host or room.host_id != participant.id:
        raise RoleViolation('Only the host may do that')
    return participant


def _require_open(room: Room) -> None:
    if room.phase == PHASE_CLOSED:
        raise PhaseClosed('The ceremony is over; this room is read-only')


def _require_nominee(category_id: str, nominee_id: str) -> None:
    if not catalog().has_category(category_id):
        raise InvalidCategory(f"Unknown category {category_id!r}")
    if not catalog().has_nominee(category_id, nominee_id):
        raise InvalidCategory(f"{nominee_id!r} is not nominated in {category_id!r}")


def _upsert(model, key: dict, values: dict):
    row = model.query.filter_by(**key).first()
    if row is None:
        row = model(**key, **values)
        db.session.add(row)
        try:
            db.session.commit()
            return row
        except IntegrityError:
            # Concurrent insert for the same key won; overwrite it instead
            db.session.rollback()
            row = model.query.filter_by(**key).first()
    for attr, value in values.items():
        setattr(row, attr, value)
    db.session.add(row)
    db.session.commit()
    return row


# ---- Mutations ----

def save_prediction(room_id: int, participant_id, category_id: str, nominee_id: str) -> Prediction:
    room = get_room(room_id)
    participant = _member(room, participant_id)
    if participant.is_host:
        raise RoleViolation('The host does not vote')
    if room.phase != PHASE_VOTING:
        raise PhaseClosed('Voting is closed')
    _require_nominee(category_id, nominee_id)
    pred = _upsert(
        Prediction,
        {'participant_id': participant.id, 'category_id': category_id},
        {'room_id': room.id, 'nominee_id': nominee_id, 'updated_at': _now()},
    )
    notify_change(room.id, 'predictions')
    return pred


def declare_winner(room_id: int, participant_id, category_id: str, nominee_id: str) -> Winner:
    room = get_room(room_id)
    _require_host(room, participant_id)
    _require_open(room)
    _require_nominee(category_id, nominee_id)
    # Last write wins when two declarations race for the same category
    winner = _upsert(
        Winner,
        {'room_id': room.id, 'category_id': category_id},
        {'nominee_id': nominee_id, 'announced_at': _now()},
    )
    current_app.logger.info(f"[winner] room={room.id} category={category_id} nominee={nominee_id}")
    notify_change(room.id, 'winners')
    return winner


def set_phase(room_id: int, participant_id, phase: str) -> Room:
    room = get_room(room_id)
    _require_host(room, participant_id)
    if phase not in PHASES:
        raise PhaseViolation(f"Unknown phase {phase!r}")
    if phase_rank(phase) != phase_rank(room.phase) + 1:
        raise PhaseViolation(f"Cannot move from {room.phase} to {phase}")
    prev = room.phase
    room.phase = phase
    db.session.add(room)
    db.session.commit()
    current_app.logger.info(f"[phase] room={room.id} {prev} -> {phase}")
    notify_change(room.id, 'rooms')
    return room


def set_current_category(room_id: int, participant_id, category_id) -> Room:
    room = get_room(room_id)
    _require_host(room, participant_id)
    _require_open(room)
    if category_id is not None and not catalog().has_category(category_id):
        raise InvalidCategory(f"Unknown category {category_id!r}")
    room.current_category_id = category_id
    db.session.add(room)
    db.session.commit()
    notify_change(room.id, 'rooms')
    return room
