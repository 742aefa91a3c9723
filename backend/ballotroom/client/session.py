"""
Local session holder: "who am I in this room" for this device.

The record is a client-local cache of identity. It decides which room to
reopen and which participant id to present on rejoin, but it never grants
host rights; the core reads ``is_host`` from the store.
"""
import json
import logging
import os
from dataclasses import asdict, dataclass
from typing import Optional

from config import ClientConfig

logger = logging.getLogger(__name__)


@dataclass
class Session:
    participant_id: int
    room_id: int
    room_code: str
    is_host: bool
    name: str

    def to_dict(self):
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> 'Session':
        return cls(
            participant_id=int(data['participant_id']),
            room_id=int(data['room_id']),
            room_code=str(data['room_code']).upper(),
            is_host=bool(data.get('is_host', False)),
            name=str(data.get('name', '')),
        )


class SessionHolder:
    def __init__(self, path: Optional[str] = None):
        self.path = path or ClientConfig.SESSION_PATH
        self._session: Optional[Session] = None
        self._loaded = False

    @property
    def session(self) -> Optional[Session]:
        if not self._loaded:
            self.load()
        return self._session

    def load(self) -> Optional[Session]:
        self._loaded = True
        self._session = None
        if not os.path.exists(self.path):
            return None
        try:
            with open(self.path, encoding='utf-8') as fh:
                self._session = Session.from_dict(json.load(fh))
        except (ValueError, KeyError, TypeError) as exc:
            # Unreadable record: drop it rather than act on half an identity
            logger.warning(f"[session-corrupt] path={self.path} error={exc}")
            self._remove_file()
        return self._session

    def save(self, session: Session) -> Session:
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, 'w', encoding='utf-8') as fh:
            json.dump(session.to_dict(), fh)
        os.replace(tmp_path, self.path)
        self._session = session
        self._loaded = True
        logger.info(f"[session-save] room={session.room_code} participant={session.participant_id}")
        return session

    def clear(self) -> None:
        self._remove_file()
        self._session = None
        self._loaded = True
        logger.info("[session-clear]")

    def for_room(self, room_code: str) -> Optional[Session]:
        """The stored session if it belongs to ``room_code`` (case-insensitive)."""
        session = self.session
        if session and session.room_code == (room_code or '').strip().upper():
            return session
        return None

    def _remove_file(self) -> None:
        try:
            os.remove(self.path)
        except FileNotFoundError:
            pass
