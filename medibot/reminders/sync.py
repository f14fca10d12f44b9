import asyncio
import logging
from typing import Dict, List, Set

from .models import Medication
from .recurrence import InvalidReminderSchedule
from .repository import Unsubscribe
from .service import ReminderService

logger = logging.getLogger(__name__)


class ReminderSync:
    """Follows users' medication feeds in the store and keeps their wake-ups in step.

    Store listeners may fire on a foreign thread; every snapshot is handed to
    the event loop before the scheduler is touched.
    """

    def __init__(self, service: ReminderService):
        self.service = service
        self._watches: Dict[str, Unsubscribe] = {}
        self._known: Dict[str, Set[str]] = {}
        self._loop = None

    def watch_user(self, user_id: str) -> bool:
        if user_id in self._watches:
            return False
        self._loop = asyncio.get_running_loop()

        def on_change(medications: List[Medication]) -> None:
            self._loop.call_soon_threadsafe(self._reconcile, user_id, medications)

        self._watches[user_id] = self.service.repository.subscribe(user_id, on_change)
        logger.info(f"👀 [Sync] Watching medications for user {user_id}")
        return True

    def unwatch_user(self, user_id: str) -> bool:
        unsubscribe = self._watches.pop(user_id, None)
        self._known.pop(user_id, None)
        if unsubscribe is None:
            return False
        unsubscribe()
        return True

    def watched_users(self) -> List[str]:
        return sorted(self._watches)

    def close(self) -> None:
        for user_id in list(self._watches):
            self.unwatch_user(user_id)

    def _reconcile(self, user_id: str, medications: List[Medication]) -> None:
        if user_id not in self._watches:
            return
        current = {m.id for m in medications if m.id}
        for gone in self._known.get(user_id, set()) - current:
            self.service.scheduler.cancel(gone)
        for medication in medications:
            try:
                self.service.schedule_medication(medication)
            except InvalidReminderSchedule as e:
                logger.warning(f"⚠️  [Sync] Not scheduling medication {medication.id}: {e}")
        self._known[user_id] = current
