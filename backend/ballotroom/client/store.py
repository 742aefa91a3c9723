"""
Persistent store adapter for the client core.

``RoomStore`` speaks the room API over a transport. The transport does the
I/O and returns ``(status, body)``; ``RoomStore`` turns error bodies back
into the exception types of :mod:`ballotroom.exceptions`.
"""
import asyncio
import logging
from typing import Optional, Tuple

import requests

from config import ClientConfig
from ballotroom.exceptions import RoomNotFound, StoreError, error_from_response
from ballotroom.models import is_valid_room_code, normalize_room_code

logger = logging.getLogger(__name__)


class RequestsTransport:
    """HTTP transport on ``requests``; blocking calls run in a worker thread."""

    def __init__(self, base_url: Optional[str] = None, timeout: Optional[float] = None, session: Optional[requests.Session] = None):
        self.base_url = (base_url or ClientConfig.SERVER_URL).rstrip('/')
        self.timeout = timeout if timeout is not None else ClientConfig.REQUEST_TIMEOUT_SEC
        self.http = session or requests.Session()

    def _send(self, method: str, path: str, payload=None, params=None) -> Tuple[int, object]:
        try:
            res = self.http.request(method, f"{self.base_url}{path}", json=payload, params=params, timeout=self.timeout)
        except requests.RequestException as exc:
            raise StoreError(f"{method} {path} failed: {exc}") from exc
        try:
            body = res.json()
        except ValueError:
            body = None
        return res.status_code, body

    async def request(self, method: str, path: str, payload=None, params=None):
        return await asyncio.to_thread(self._send, method, path, payload, params)

    def close(self) -> None:
        self.http.close()


class RoomStore:
    def __init__(self, transport=None):
        self.transport = transport or RequestsTransport()

    async def _call(self, method: str, path: str, payload=None, params=None):
        status, body = await self.transport.request(method, path, payload, params)
        if status >= 400:
            err = error_from_response(status, body)
            logger.debug(f"[store-error] {method} {path} status={status} code={err.code}")
            raise err
        return body

    # ---- Compound operations ----

    async def create_room(self, host_name: str, custom_code: Optional[str] = None) -> dict:
        payload = {'host_name': host_name}
        if custom_code:
            payload['custom_code'] = custom_code
        return await self._call('POST', '/api/rooms/create', payload)

    async def join_room(self, room_code: str, participant_name: str, participant_id: Optional[int] = None) -> dict:
        payload = {'room_code': room_code.upper(), 'participant_name': participant_name}
        if participant_id is not None:
            payload['participant_id'] = participant_id
        return await self._call('POST', '/api/rooms/join', payload)

    # ---- Reads ----

    async def get_room_by_code(self, code: str) -> dict:
        """Look a room up by code. A code no room could have is never sent."""
        normalized = normalize_room_code(code)
        if not is_valid_room_code(normalized):
            raise RoomNotFound(normalized or None)
        return await self._call('GET', f"/api/rooms/code/{normalized}")

    async def get_room(self, room_id: int) -> dict:
        return await self._call('GET', f"/api/rooms/{room_id}")

    async def get_participants(self, room_id: int) -> list:
        return await self._call('GET', f"/api/rooms/{room_id}/participants")

    async def get_predictions(self, room_id: int, participant_id: int) -> list:
        return await self._call('GET', f"/api/rooms/{room_id}/predictions", params={'participant_id': participant_id})

    async def get_room_predictions(self, room_id: int) -> list:
        return await self._call('GET', f"/api/rooms/{room_id}/predictions")

    async def get_winners(self, room_id: int) -> list:
        return await self._call('GET', f"/api/rooms/{room_id}/winners")

    async def get_leaderboard(self, room_id: int) -> list:
        return await self._call('GET', f"/api/rooms/{room_id}/leaderboard")

    # ---- Writes ----

    async def save_prediction(self, participant_id: int, room_id: int, category_id: str, nominee_id: str) -> dict:
        return await self._call('PUT', f"/api/rooms/{room_id}/predictions", {
            'participant_id': participant_id,
            'category_id': category_id,
            'nominee_id': nominee_id,
        })

    async def declare_winner(self, participant_id: int, room_id: int, category_id: str, nominee_id: str) -> dict:
        return await self._call('PUT', f"/api/rooms/{room_id}/winners", {
            'participant_id': participant_id,
            'category_id': category_id,
            'nominee_id': nominee_id,
        })

    async def update_room_phase(self, participant_id: int, room_id: int, phase: str) -> dict:
        return await self._call('POST', f"/api/rooms/{room_id}/phase", {'participant_id': participant_id, 'phase': phase})

    async def set_current_category(self, participant_id: int, room_id: int, category_id: Optional[str]) -> dict:
        return await self._call('POST', f"/api/rooms/{room_id}/current-category", {
            'participant_id': participant_id,
            'category_id': category_id,
        })

    # ---- Table reads by name, for per-table refetch ----

    async def fetch_table(self, table: str, room_id: int):
        if table == 'rooms':
            return await self.get_room(room_id)
        if table == 'participants':
            return await self.get_participants(room_id)
        if table == 'predictions':
            return await self.get_room_predictions(room_id)
        if table == 'winners':
            return await self.get_winners(room_id)
        raise ValueError(f"Unknown table {table!r}")
