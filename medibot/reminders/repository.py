import copy
import logging
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone as dt_timezone
from typing import Any, Callable, Dict, List, Optional

from .models import Medication, UserProfile

logger = logging.getLogger(__name__)

MEDICATIONS_COLLECTION = "medications"
USERS_COLLECTION = "users"
# Per-user listings are capped
USER_MEDICATION_LIMIT = 50

MedicationListener = Callable[[List[Medication]], None]
Unsubscribe = Callable[[], None]


def _newest_first(medications: List[Medication]) -> List[Medication]:
    epoch = datetime.min.replace(tzinfo=dt_timezone.utc)
    return sorted(medications, key=lambda m: m.created_at or epoch, reverse=True)


class MedicationRepository(ABC):
    """Durable medication records and the user profile fields reminders need."""

    @abstractmethod
    def get_medication(self, medication_id: str) -> Optional[Medication]:
        ...

    @abstractmethod
    def list_active_medications(self, user_id: str) -> List[Medication]:
        ...

    @abstractmethod
    def list_all_active_medications(self) -> List[Medication]:
        ...

    @abstractmethod
    def subscribe(self, user_id: str, callback: MedicationListener) -> Unsubscribe:
        """Call `callback` with the user's active medications now and after every change."""

    @abstractmethod
    def add_medication(self, medication: Medication) -> Medication:
        ...

    @abstractmethod
    def update_medication(self, medication_id: str, changes: Dict[str, Any]) -> Optional[Medication]:
        """Apply camelCase document field changes; a None value clears the field."""

    @abstractmethod
    def delete_medication(self, medication_id: str) -> bool:
        ...

    @abstractmethod
    def get_user_profile(self, user_id: str) -> Optional[UserProfile]:
        ...

    @abstractmethod
    def save_device_token(self, user_id: str, token: str) -> None:
        ...

    def get_device_token(self, user_id: str) -> Optional[str]:
        profile = self.get_user_profile(user_id)
        return profile.fcm_token if profile else None


class InMemoryMedicationRepository(MedicationRepository):
    """Process-local store for development and tests; documents kept in Firestore's shape."""

    def __init__(self):
        self._medications: Dict[str, Dict[str, Any]] = {}
        self._users: Dict[str, Dict[str, Any]] = {}
        self._listeners: Dict[str, List[MedicationListener]] = {}
        self._lock = threading.RLock()

    def get_medication(self, medication_id: str) -> Optional[Medication]:
        with self._lock:
            data = self._medications.get(medication_id)
            return Medication.from_document(medication_id, copy.deepcopy(data)) if data else None

    def list_active_medications(self, user_id: str) -> List[Medication]:
        with self._lock:
            meds = [
                Medication.from_document(mid, copy.deepcopy(data))
                for mid, data in self._medications.items()
                if data.get("userId") == user_id
            ]
        return _newest_first([m for m in meds if m.is_active])[:USER_MEDICATION_LIMIT]

    def list_all_active_medications(self) -> List[Medication]:
        with self._lock:
            meds = [Medication.from_document(mid, copy.deepcopy(data)) for mid, data in self._medications.items()]
        return [m for m in meds if m.is_active]

    def subscribe(self, user_id: str, callback: MedicationListener) -> Unsubscribe:
        with self._lock:
            self._listeners.setdefault(user_id, []).append(callback)
        callback(self.list_active_medications(user_id))

        def unsubscribe() -> None:
            with self._lock:
                listeners = self._listeners.get(user_id, [])
                if callback in listeners:
                    listeners.remove(callback)

        return unsubscribe

    def add_medication(self, medication: Medication) -> Medication:
        now = datetime.now(dt_timezone.utc)
        medication_id = medication.id or uuid.uuid4().hex
        doc = medication.to_document()
        doc.update({"createdAt": now, "updatedAt": now})
        with self._lock:
            self._medications[medication_id] = doc
        self._notify(medication.user_id)
        return self.get_medication(medication_id)

    def update_medication(self, medication_id: str, changes: Dict[str, Any]) -> Optional[Medication]:
        with self._lock:
            doc = self._medications.get(medication_id)
            if doc is None:
                return None
            doc.update(changes)
            doc["updatedAt"] = datetime.now(dt_timezone.utc)
            user_id = doc.get("userId")
        self._notify(user_id)
        return self.get_medication(medication_id)

    def delete_medication(self, medication_id: str) -> bool:
        with self._lock:
            doc = self._medications.pop(medication_id, None)
        if doc is None:
            return False
        self._notify(doc.get("userId"))
        return True

    def get_user_profile(self, user_id: str) -> Optional[UserProfile]:
        with self._lock:
            data = self._users.get(user_id)
            return UserProfile.from_document(user_id, copy.deepcopy(data)) if data is not None else None

    def save_device_token(self, user_id: str, token: str) -> None:
        with self._lock:
            self._users.setdefault(user_id, {})["fcmToken"] = token

    def put_user(self, user_id: str, data: Dict[str, Any]) -> None:
        """Seed a user profile document (merge)."""
        with self._lock:
            self._users.setdefault(user_id, {}).update(data)

    def _notify(self, user_id: Optional[str]) -> None:
        if not user_id:
            return
        with self._lock:
            listeners = list(self._listeners.get(user_id, []))
        if not listeners:
            return
        snapshot = self.list_active_medications(user_id)
        for listener in listeners:
            listener(snapshot)


class FirestoreMedicationRepository(MedicationRepository):
    """Medication records in Cloud Firestore through the firebase_admin client."""

    def __init__(self, client=None):
        if client is None:
            from firebase_admin import firestore
            from medibot.core.firebase import ensure_firebase_initialized

            if not ensure_firebase_initialized():
                raise RuntimeError("Firebase is not configured; set FIREBASE_CREDENTIALS_JSON or FIREBASE_PROJECT_ID")
            client = firestore.client()
        self.db = client

    def _medications(self):
        return self.db.collection(MEDICATIONS_COLLECTION)

    def _user_query(self, user_id: str):
        from google.cloud.firestore_v1.base_query import FieldFilter

        return self._medications().where(filter=FieldFilter("userId", "==", user_id)).limit(USER_MEDICATION_LIMIT)

    @staticmethod
    def _to_medications(snapshots) -> List[Medication]:
        meds = []
        for snap in snapshots:
            try:
                meds.append(Medication.from_document(snap.id, snap.to_dict() or {}))
            except (TypeError, ValueError) as e:
                logger.warning(f"⚠️  [Firestore] Skipping unreadable medication {snap.id}: {e}")
        return meds

    def get_medication(self, medication_id: str) -> Optional[Medication]:
        snap = self._medications().document(medication_id).get()
        if not snap.exists:
            return None
        return Medication.from_document(snap.id, snap.to_dict() or {})

    def list_active_medications(self, user_id: str) -> List[Medication]:
        meds = self._to_medications(self._user_query(user_id).stream())
        return _newest_first([m for m in meds if m.is_active])

    def list_all_active_medications(self) -> List[Medication]:
        from google.cloud.firestore_v1.base_query import FieldFilter

        query = self._medications().where(filter=FieldFilter("isActive", "==", True))
        return self._to_medications(query.stream())

    def subscribe(self, user_id: str, callback: MedicationListener) -> Unsubscribe:
        # Firestore delivers snapshots on its own thread
        def on_snapshot(snapshots, changes, read_time):
            try:
                meds = [m for m in self._to_medications(snapshots) if m.is_active]
            except Exception:
                logger.exception(f"❌ [Firestore] Error processing medications for user {user_id}")
                meds = []
            callback(_newest_first(meds))

        watch = self._user_query(user_id).on_snapshot(on_snapshot)
        return watch.unsubscribe

    def add_medication(self, medication: Medication) -> Medication:
        from firebase_admin import firestore

        doc = medication.to_document()
        doc.update({"createdAt": firestore.SERVER_TIMESTAMP, "updatedAt": firestore.SERVER_TIMESTAMP})
        if medication.id:
            ref = self._medications().document(medication.id)
            ref.set(doc)
        else:
            _, ref = self._medications().add(doc)
        return self.get_medication(ref.id)

    def update_medication(self, medication_id: str, changes: Dict[str, Any]) -> Optional[Medication]:
        from firebase_admin import firestore

        ref = self._medications().document(medication_id)
        if not ref.get().exists:
            return None
        update = dict(changes)
        update["updatedAt"] = firestore.SERVER_TIMESTAMP
        ref.update(update)
        return self.get_medication(medication_id)

    def delete_medication(self, medication_id: str) -> bool:
        ref = self._medications().document(medication_id)
        if not ref.get().exists:
            return False
        ref.delete()
        return True

    def get_user_profile(self, user_id: str) -> Optional[UserProfile]:
        snap = self.db.collection(USERS_COLLECTION).document(user_id).get()
        if not snap.exists:
            return None
        return UserProfile.from_document(user_id, snap.to_dict() or {})

    def save_device_token(self, user_id: str, token: str) -> None:
        self.db.collection(USERS_COLLECTION).document(user_id).set({"fcmToken": token}, merge=True)


def build_repository(backend: str) -> MedicationRepository:
    if backend == "memory":
        logger.warning("⚠️  [Store] Using in-memory medication store; data is lost on restart")
        return InMemoryMedicationRepository()
    return FirestoreMedicationRepository()
