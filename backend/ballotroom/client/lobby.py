"""Entry flows: create or join a room and remember who we are."""
import logging
from typing import Optional

from ballotroom.client.session import Session, SessionHolder

logger = logging.getLogger(__name__)


async def create_room(store, sessions: SessionHolder, host_name: str, custom_code: Optional[str] = None) -> Session:
    result = await store.create_room(host_name, custom_code)
    session = Session(
        participant_id=result['hostId'],
        room_id=result['roomId'],
        room_code=result['roomCode'],
        is_host=True,
        name=host_name,
    )
    logger.info(f"[create] room={session.room_code} host={session.participant_id}")
    return sessions.save(session)


async def join_room(store, sessions: SessionHolder, room_code: str, name: str) -> Session:
    """Join ``room_code``. A stored session for the same room is presented so the server can rejoin us."""
    previous = sessions.for_room(room_code)
    result = await store.join_room(room_code, name, previous.participant_id if previous else None)
    session = Session(
        participant_id=result['participantId'],
        room_id=result['roomId'],
        room_code=room_code.strip().upper(),
        is_host=previous.is_host if (previous and result['isRejoin']) else False,
        name=previous.name if (previous and result['isRejoin']) else name,
    )
    logger.info(f"[join] room={session.room_code} participant={session.participant_id} rejoin={result['isRejoin']}")
    return sessions.save(session)
