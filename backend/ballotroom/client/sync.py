"""
Room synchronization core.

``RoomSync`` keeps this client's copy of one room (room row, roster,
predictions, winners) and the leaderboard derived from it. Every channel
notification triggers a full re-read of the table it names; the snapshot
that comes back replaces the local copy. User intents are checked locally
for role and phase, then written to the store. Only votes are applied
optimistically.

Everything runs on one asyncio loop. A room epoch is bumped whenever the
room identity changes or the core is closed, and any read or write result
from an older epoch is dropped.
"""
import asyncio
import logging
from functools import partial
from typing import Callable, Dict, List, Optional

from ballotroom.catalog import Catalog, get_catalog
from ballotroom.client.session import Session, SessionHolder
from ballotroom.exceptions import (
    BallotRoomError,
    InvalidCategory,
    LoadFailed,
    PhaseClosed,
    PhaseViolation,
    RoomNotFound,
    WriteFailed,
)
from ballotroom.models import PHASE_CLOSED, PHASE_LIVE, PHASE_VOTING, TABLES
from ballotroom.services import scoring

logger = logging.getLogger(__name__)

IDLE = 'IDLE'
FETCHING = 'FETCHING'
APPLYING = 'APPLYING'


class TableSync:
    """Refetch-on-notify state machine for one table: IDLE -> FETCHING -> APPLYING -> IDLE.

    Notifications that arrive while a fetch is running are coalesced into a
    single follow-up fetch. Fetches for a table never overlap, so the last
    snapshot applied is always the last one read.
    """

    def __init__(self, table: str, fetch: Callable, apply: Callable):
        self.table = table
        self._fetch = fetch
        self._apply = apply
        self.state = IDLE
        self.dirty = False
        self.fetch_count = 0
        self.task: Optional[asyncio.Task] = None

    def notify(self) -> asyncio.Task:
        if self.state != IDLE:
            self.dirty = True
            return self.task
        self.state = FETCHING
        self.task = asyncio.get_running_loop().create_task(self._run())
        return self.task

    async def _run(self) -> None:
        try:
            while True:
                self.dirty = False
                self.state = FETCHING
                self.fetch_count += 1
                try:
                    rows = await self._fetch()
                except BallotRoomError as exc:
                    # Keep the last good copy; the next notification re-reads
                    logger.warning(f"[refetch-failed] table={self.table} error={exc.message}")
                else:
                    self.state = APPLYING
                    self._apply(rows)
                if not self.dirty:
                    break
        finally:
            self.state = IDLE


class SubscriptionHandle:
    """The four table subscriptions of one room. Released exactly once."""

    def __init__(self, room_id: int, subscriptions: list, on_release: Optional[Callable[[], None]] = None):
        self.room_id = room_id
        self.subscriptions = list(subscriptions)
        self._on_release = on_release
        self.released = False

    def release(self) -> None:
        if self.released:
            return
        self.released = True
        for sub in self.subscriptions:
            sub.unsubscribe()
        logger.info(f"[unsubscribe] room={self.room_id} topics={len(self.subscriptions)}")
        if self._on_release:
            self._on_release()


class RoomSync:
    def __init__(self, store, channel, sessions: Optional[SessionHolder] = None, catalog: Optional[Catalog] = None):
        self.store = store
        self.channel = channel
        self.sessions = sessions or SessionHolder()
        self.catalog = catalog or get_catalog()

        self.room: Optional[dict] = None
        self.participants: List[dict] = []
        self.predictions: List[dict] = []
        self.winners: List[dict] = []
        self.my_predictions: Dict[str, str] = {}
        self.leaderboard: List[dict] = []
        self.last_error: Optional[BallotRoomError] = None

        self._session: Optional[Session] = None
        self._pending_votes: Dict[str, str] = {}
        self._epoch = 0
        self._load_seq = 0
        # Snapshots applied per table by re-reads, so a slower load cannot clobber them
        self._applied: Dict[str, int] = dict.fromkeys(TABLES, 0)
        self._handle: Optional[SubscriptionHandle] = None
        self._tables: Dict[str, TableSync] = {}
        self._change_listeners: List[Callable] = []
        self._error_listeners: List[Callable] = []

    # ---- Listeners ----

    def on_change(self, callback: Callable[['RoomSync'], None]) -> Callable[[], None]:
        self._change_listeners.append(callback)
        return lambda: self._change_listeners.remove(callback) if callback in self._change_listeners else None

    def on_error(self, callback: Callable[[str], None]) -> Callable[[], None]:
        self._error_listeners.append(callback)
        return lambda: self._error_listeners.remove(callback) if callback in self._error_listeners else None

    def _changed(self) -> None:
        for cb in list(self._change_listeners):
            try:
                cb(self)
            except Exception:
                logger.exception(f"[listener-failed] room={self.room_id} kind=change")

    def _report(self, err: BallotRoomError) -> None:
        self.last_error = err
        logger.error(f"[{err.code}] {err.message}")
        for cb in list(self._error_listeners):
            try:
                cb(err.message)
            except Exception:
                logger.exception(f"[listener-failed] room={self.room_id} kind=error")

    # ---- Derived views ----

    @property
    def room_id(self) -> Optional[int]:
        return self.room['id'] if self.room else None

    @property
    def participant_id(self) -> Optional[int]:
        return self._session.participant_id if self._session else None

    @property
    def me(self) -> Optional[dict]:
        pid = self.participant_id
        for p in self.participants:
            if p['id'] == pid:
                return p
        return None

    @property
    def is_host(self) -> bool:
        """Host rights come from the store's rows, never from the cached session flag."""
        me = self.me
        return bool(me and me.get('is_host') and self.room and self.room.get('host_id') == me['id'])

    @property
    def phase(self) -> Optional[str]:
        return self.room['phase'] if self.room else None

    @property
    def current_category(self) -> Optional[str]:
        return self.room.get('current_category_id') if self.room else None

    @property
    def winners_map(self) -> Dict[str, str]:
        return scoring.winners_by_category(self.winners)

    @property
    def is_complete(self) -> bool:
        return scoring.is_complete(self.winners, self.catalog.category_count)

    def vote_tallies(self, category_id: str) -> Dict[str, List[int]]:
        return scoring.vote_tallies(self.predictions, category_id)

    def participant_stats(self) -> List[dict]:
        by_id = {e['participant_id']: e for e in self.leaderboard}
        stats = []
        for p in self.participants:
            entry = by_id.get(p['id'], {})
            stats.append(dict(p, predictions_count=entry.get('predictions_count', 0), score=entry.get('score', 0)))
        return stats

    def _recompute(self) -> None:
        self.leaderboard = scoring.compute_leaderboard(self.participants, self.predictions, self.winners)

    def _reconcile_mine(self) -> None:
        pid = self.participant_id
        mine = {p['category_id']: p['nominee_id'] for p in self.predictions if p['participant_id'] == pid}
        mine.update(self._pending_votes)
        self.my_predictions = mine

    # ---- Loading ----

    async def load(self, room_code: str) -> dict:
        """Load a room and everything in it. All or nothing: on failure the previous state stays."""
        self._load_seq += 1
        seq, epoch = self._load_seq, self._epoch
        applied_at_start = dict(self._applied)
        try:
            room = await self.store.get_room_by_code(room_code)
        except RoomNotFound as exc:
            self._report(exc)
            raise
        except BallotRoomError as exc:
            err = LoadFailed(f"Failed to load room {room_code}: {exc.message}")
            self._report(err)
            raise err from exc

        session = self.sessions.for_room(room['code'])
        try:
            participants, winners = await asyncio.gather(
                self.store.get_participants(room['id']),
                self.store.get_winners(room['id']),
            )
            mine = await self.store.get_predictions(room['id'], session.participant_id) if session else []
            predictions = await self.store.get_room_predictions(room['id'])
        except BallotRoomError as exc:
            err = LoadFailed(f"Failed to load room {room_code}: {exc.message}")
            self._report(err)
            raise err from exc

        if seq != self._load_seq or epoch != self._epoch:
            logger.info(f"[load-stale] code={room_code} dropped")
            return room

        same_room = bool(self.room) and self.room['id'] == room['id']
        if self.room and not same_room:
            self._teardown()
            self._pending_votes = {}

        def reread_since_start(table):
            return same_room and self._applied[table] != applied_at_start[table]

        self._session = session
        if not reread_since_start('rooms'):
            self.room = room
        if not reread_since_start('participants'):
            self.participants = participants
        if not reread_since_start('winners'):
            self.winners = winners
        if reread_since_start('predictions'):
            self._reconcile_mine()
        else:
            self.predictions = predictions
            self.my_predictions = {p['category_id']: p['nominee_id'] for p in mine}
            self.my_predictions.update(self._pending_votes)
        self.last_error = None
        self._recompute()
        logger.info(f"[load] room={room['id']} code={room['code']} participants={len(self.participants)} winners={len(self.winners)}")
        self._changed()
        return room

    # ---- Subscriptions ----

    def subscribe(self, room_id: int) -> SubscriptionHandle:
        """Subscribe to all four tables of ``room_id``; a different room's handle is released first."""
        if self._handle and not self._handle.released:
            if self._handle.room_id == room_id:
                return self._handle
            self._teardown()
        loop = asyncio.get_running_loop()
        epoch = self._epoch
        self._tables = {
            table: TableSync(table, partial(self.store.fetch_table, table, room_id), partial(self._apply_table, table, epoch))
            for table in TABLES
        }
        subs = [
            self.channel.subscribe(room_id, table, partial(self._notify_threadsafe, loop, epoch, table))
            for table in TABLES
        ]
        handle = SubscriptionHandle(room_id, subs)
        self._handle = handle
        logger.info(f"[subscribe] room={room_id} topics={len(subs)}")
        # Catch up on anything written between the initial load and the subscription
        for table in TABLES:
            self._tables[table].notify()
        return handle

    def _teardown(self) -> None:
        if self._handle:
            self._handle.release()
            self._handle = None
        self._tables = {}
        self._epoch += 1

    def _notify_threadsafe(self, loop, epoch: int, table: str) -> None:
        if loop.is_closed():
            return
        loop.call_soon_threadsafe(self._on_notify, epoch, table)

    def _on_notify(self, epoch: int, table: str) -> None:
        if epoch != self._epoch or table not in self._tables:
            return
        self._tables[table].notify()

    def _apply_table(self, table: str, epoch: int, rows) -> None:
        if epoch != self._epoch:
            logger.debug(f"[refetch-stale] table={table} dropped")
            return
        if table == 'rooms':
            self.room = rows
        elif table == 'participants':
            self.participants = rows
        elif table == 'predictions':
            self.predictions = rows
            self._reconcile_mine()
        elif table == 'winners':
            self.winners = rows
        self._applied[table] += 1
        if table != 'rooms':
            self._recompute()
        self._changed()

    def table_state(self, table: str) -> str:
        sync = self._tables.get(table)
        return sync.state if sync else IDLE

    async def settle(self) -> None:
        """Wait until every table re-read triggered so far has been applied."""
        while True:
            await asyncio.sleep(0)
            tasks = [t.task for t in self._tables.values() if t.task and not t.task.done()]
            if not tasks:
                return
            await asyncio.gather(*tasks, return_exceptions=True)

    async def open(self, room_code: str) -> dict:
        room = await self.load(room_code)
        self.subscribe(room['id'])
        return room

    def close(self) -> None:
        self._teardown()
        self.room = None
        self.participants, self.predictions, self.winners, self.leaderboard = [], [], [], []
        self.my_predictions, self._pending_votes = {}, {}
        self._session = None

    def leave(self) -> None:
        """Forget this device's identity and stop following the room."""
        self.close()
        self.sessions.clear()

    # ---- Intents ----

    def _require_room(self) -> None:
        if not self.room:
            raise PhaseViolation('No room loaded')

    def _require_nominee(self, category_id: str, nominee_id: str) -> None:
        if not self.catalog.has_nominee(category_id, nominee_id):
            raise InvalidCategory(f"{nominee_id!r} is not nominated in {category_id!r}")

    async def vote(self, category_id: str, nominee_id: str) -> bool:
        """Guest pick for one category. Optimistic; a failed write removes the local pick."""
        self._require_room()
        me = self.me
        if me is None or self.is_host:
            logger.warning(f"[vote-ignored] room={self.room_id} participant={self.participant_id} not a guest")
            return False
        if self.phase != PHASE_VOTING:
            raise PhaseClosed('Voting is closed')
        self._require_nominee(category_id, nominee_id)

        epoch = self._epoch
        self._pending_votes[category_id] = nominee_id
        self.my_predictions[category_id] = nominee_id
        self._changed()
        try:
            await self.store.save_prediction(me['id'], self.room_id, category_id, nominee_id)
        except BallotRoomError as exc:
            if epoch != self._epoch:
                return False
            # Only roll back if no newer pick for this category superseded ours
            if self._pending_votes.get(category_id) == nominee_id:
                self._pending_votes.pop(category_id, None)
                self.my_predictions.pop(category_id, None)
                self._changed()
            self._report(WriteFailed(f"Could not save your pick for {category_id}: {exc.message}"))
            return False
        if epoch == self._epoch and self._pending_votes.get(category_id) == nominee_id:
            self._pending_votes.pop(category_id, None)
        return True

    async def _host_action(self, action: str, call) -> bool:
        self._require_room()
        if not self.is_host:
            logger.warning(f"[{action}-ignored] room={self.room_id} participant={self.participant_id} not host")
            return False
        epoch = self._epoch
        try:
            await call(self.participant_id, self.room_id)
        except BallotRoomError as exc:
            if epoch == self._epoch:
                self._report(WriteFailed(f"{action} failed: {exc.message}"))
            return False
        logger.info(f"[{action}] room={self.room_id}")
        return True

    async def start_ceremony(self) -> bool:
        if self.phase != PHASE_VOTING:
            # Phase only moves forward
            return False
        return await self._host_action(
            'start-ceremony', lambda pid, rid: self.store.update_room_phase(pid, rid, PHASE_LIVE))

    async def end_ceremony(self) -> bool:
        if self.phase != PHASE_LIVE:
            return False
        return await self._host_action(
            'end-ceremony', lambda pid, rid: self.store.update_room_phase(pid, rid, PHASE_CLOSED))

    async def declare_winner(self, category_id: str, nominee_id: str) -> bool:
        self._require_room()
        if self.phase == PHASE_CLOSED:
            raise PhaseClosed('The ceremony is over')
        self._require_nominee(category_id, nominee_id)
        return await self._host_action(
            'declare-winner', lambda pid, rid: self.store.declare_winner(pid, rid, category_id, nominee_id))

    async def set_current_category(self, category_id: Optional[str]) -> bool:
        self._require_room()
        if self.phase == PHASE_CLOSED:
            raise PhaseClosed('The ceremony is over')
        if category_id is not None and not self.catalog.has_category(category_id):
            raise InvalidCategory(f"Unknown category {category_id!r}")
        return await self._host_action(
            'set-category', lambda pid, rid: self.store.set_current_category(pid, rid, category_id))

    async def next_category(self) -> bool:
        target = self.catalog.next_category_id(self.current_category)
        if target is None:
            return False
        return await self.set_current_category(target)

    async def previous_category(self) -> bool:
        target = self.catalog.previous_category_id(self.current_category)
        if target is None:
            return False
        return await self.set_current_category(target)
