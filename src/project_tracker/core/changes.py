"""Change notification feed.

Subscribers register interest in a set of entity types and are called with
the entity type whenever something of that type changes. The signal carries
no payload beyond "re-read": subscribers must treat derived state as stale.
"""

import logging
import sqlite3
import threading
from collections.abc import Callable, Iterable
from pathlib import Path

logger = logging.getLogger(__name__)

ENTITY_TYPES = frozenset({"project", "task", "proposal", "tag", "comment"})


class ChangeFeed:
    """In-process publish/subscribe registry keyed by entity type."""

    def __init__(self):
        self._lock = threading.Lock()
        self._subscribers: dict[int, tuple[frozenset[str], Callable[[str], None]]] = {}
        self._next_id = 0

    def subscribe(
        self,
        entity_types: Iterable[str],
        callback: Callable[[str], None],
    ) -> Callable[[], None]:
        """Register a callback. Returns a function that removes it again."""
        types = frozenset(entity_types)
        with self._lock:
            handle = self._next_id
            self._next_id += 1
            self._subscribers[handle] = (types, callback)

        def unsubscribe():
            with self._lock:
                self._subscribers.pop(handle, None)

        return unsubscribe

    def publish(self, entity_type: str):
        """Notify every subscriber interested in ``entity_type``."""
        with self._lock:
            targets = [cb for types, cb in self._subscribers.values() if entity_type in types]
        logger.debug("Change published: %s (%d subscribers)", entity_type, len(targets))
        for callback in targets:
            try:
                callback(entity_type)
            except Exception:
                logger.exception("Change subscriber failed for %s", entity_type)

    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)


feed = ChangeFeed()


class ActivityWatcher:
    """Background thread that republishes writes made by other connections.

    Every tracked write lands in ``activity_logs`` through a trigger, so
    polling that table for new ids picks up changes from other processes.
    Local writes are already published by the store; seeing them again here
    only produces a redundant signal.
    """

    def __init__(
        self,
        db_path: Path,
        change_feed: ChangeFeed | None = None,
        poll_interval: float = 2.0,
    ):
        self.db_path = db_path
        self.feed = change_feed or feed
        self.poll_interval = poll_interval
        self.last_seen_id = 0
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self):
        """Start the watcher thread from the current end of the log."""
        if self._thread and self._thread.is_alive():
            return
        self.last_seen_id = self._max_id()
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, name="activity-watcher", daemon=True
        )
        self._thread.start()
        logger.info("Activity watcher started at log id %d", self.last_seen_id)

    def stop(self):
        """Signal the watcher thread to stop."""
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=10)
        logger.info("Activity watcher stopped")

    def poll(self) -> set[str]:
        """Publish entity types seen since the last poll. Returns them."""
        from project_tracker.db.engine import init_db

        db = init_db(self.db_path)
        try:
            rows = db.execute(
                "SELECT id, entity_type FROM activity_logs WHERE id > ? ORDER BY id",
                (self.last_seen_id,),
            ).fetchall()
        finally:
            db.close()

        if not rows:
            return set()
        self.last_seen_id = rows[-1]["id"]
        changed = {r["entity_type"] for r in rows}
        for entity_type in sorted(changed):
            self.feed.publish(entity_type)
        return changed

    def _run(self):
        while not self._stop_event.is_set():
            try:
                self.poll()
            except Exception:
                logger.exception("Error in activity watcher loop")
            self._stop_event.wait(self.poll_interval)

    def _max_id(self) -> int:
        from project_tracker.db.engine import init_db

        db = init_db(self.db_path)
        try:
            row = db.execute("SELECT MAX(id) AS max_id FROM activity_logs").fetchone()
        except sqlite3.Error:
            logger.exception("Could not read activity log position")
            return 0
        finally:
            db.close()
        return row["max_id"] or 0
