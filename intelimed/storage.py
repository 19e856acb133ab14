"""
Storage adapters for chat turns, assessments and the CRUD surfaces.

The request handlers only talk to the `Storage` interface. Two adapters are
provided:
- InMemoryStorage: process-local dictionaries (local dev, tests, default)
- RedisStorage: JSON records in Redis with per-user index sets

Adapters implement four record primitives; ordering, model validation and the
domain-level methods live in the base class so both backends behave the same.
These classes are decoupled from environment variables; intelimed.main passes
configuration via the constructors.
"""
from __future__ import annotations

import copy
import itertools
import json
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel

from .models import (
    ChatMessage,
    EmergencyContact,
    EmergencyContactCreate,
    EmergencyContactUpdate,
    HealthAssessment,
    HealthGoal,
    HealthGoalCreate,
    HealthGoalUpdate,
    Medication,
    MedicationCreate,
    MedicationUpdate,
    NewChatMessage,
    NewHealthAssessment,
)

CHAT = "chat"
ASSESSMENT = "assessment"
GOAL = "goal"
MEDICATION = "medication"
CONTACT = "contact"

M = TypeVar("M", bound=BaseModel)


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Storage(ABC):
    """Repository contract used by the API layer.

    Chat messages and assessments are append-only; the other record kinds
    support partial updates and deletes.
    """

    backend_name = "abstract"

    # -------- primitives implemented by adapters --------
    @abstractmethod
    def _insert(self, kind: str, record_id: str, user_id: str, data: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    def _select(self, kind: str, user_id: str) -> List[Tuple[int, Dict[str, Any]]]:
        """Return (insertion sequence, record) pairs for one user, in any order."""

    @abstractmethod
    def _get(self, kind: str, record_id: str) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    def _replace(self, kind: str, record_id: str, data: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    def _delete(self, kind: str, record_id: str) -> bool:
        ...

    # -------- shared helpers --------
    def _create(self, kind: str, model_cls: Type[M], fields: Dict[str, Any], stamp_field: str) -> M:
        record = model_cls.model_validate({**fields, "id": _new_id(), stamp_field: _utcnow()})
        self._insert(kind, record.id, record.userId, record.model_dump(mode="json"))
        return record

    def _ordered(self, kind: str, model_cls: Type[M], user_id: str, stamp_field: str, newest_first: bool = False) -> List[M]:
        rows = [(seq, model_cls.model_validate(data)) for seq, data in self._select(kind, user_id)]
        # Timestamp first; insertion sequence breaks ties from coarse clocks.
        rows.sort(key=lambda row: (getattr(row[1], stamp_field), row[0]), reverse=newest_first)
        return [model for _, model in rows]

    def _update(self, kind: str, model_cls: Type[M], record_id: str, changes: BaseModel) -> Optional[M]:
        raw = self._get(kind, record_id)
        if raw is None:
            return None
        merged = model_cls.model_validate({**raw, **changes.model_dump(exclude_unset=True)})
        self._replace(kind, record_id, merged.model_dump(mode="json"))
        return merged

    # -------- chat --------
    def append_chat_message(self, message: NewChatMessage) -> ChatMessage:
        return self._create(CHAT, ChatMessage, message.model_dump(), "timestamp")

    def list_chat_messages_for_user(self, user_id: str) -> List[ChatMessage]:
        """All turns for a user, oldest first."""
        return self._ordered(CHAT, ChatMessage, user_id, "timestamp")

    # -------- assessments --------
    def append_assessment(self, assessment: NewHealthAssessment) -> HealthAssessment:
        return self._create(ASSESSMENT, HealthAssessment, assessment.model_dump(), "completedAt")

    def list_assessments_for_user(self, user_id: str) -> List[HealthAssessment]:
        """Assessments for a user, most recent first."""
        return self._ordered(ASSESSMENT, HealthAssessment, user_id, "completedAt", newest_first=True)

    # -------- health goals --------
    def list_health_goals(self, user_id: str) -> List[HealthGoal]:
        return self._ordered(GOAL, HealthGoal, user_id, "createdAt")

    def create_health_goal(self, goal: HealthGoalCreate) -> HealthGoal:
        return self._create(GOAL, HealthGoal, goal.model_dump(), "createdAt")

    def update_health_goal(self, goal_id: str, changes: HealthGoalUpdate) -> Optional[HealthGoal]:
        return self._update(GOAL, HealthGoal, goal_id, changes)

    def delete_health_goal(self, goal_id: str) -> bool:
        return self._delete(GOAL, goal_id)

    # -------- medications --------
    def list_medications(self, user_id: str) -> List[Medication]:
        """Active medications only."""
        return [m for m in self._ordered(MEDICATION, Medication, user_id, "createdAt") if m.active]

    def create_medication(self, medication: MedicationCreate) -> Medication:
        return self._create(MEDICATION, Medication, medication.model_dump(), "createdAt")

    def update_medication(self, medication_id: str, changes: MedicationUpdate) -> Optional[Medication]:
        return self._update(MEDICATION, Medication, medication_id, changes)

    def delete_medication(self, medication_id: str) -> bool:
        return self._delete(MEDICATION, medication_id)

    # -------- emergency contacts --------
    def list_emergency_contacts(self, user_id: str) -> List[EmergencyContact]:
        return self._ordered(CONTACT, EmergencyContact, user_id, "createdAt")

    def create_emergency_contact(self, contact: EmergencyContactCreate) -> EmergencyContact:
        return self._create(CONTACT, EmergencyContact, contact.model_dump(), "createdAt")

    def update_emergency_contact(self, contact_id: str, changes: EmergencyContactUpdate) -> Optional[EmergencyContact]:
        return self._update(CONTACT, EmergencyContact, contact_id, changes)

    def delete_emergency_contact(self, contact_id: str) -> bool:
        return self._delete(CONTACT, contact_id)


class InMemoryStorage(Storage):
    """Process-local storage; contents vanish on restart."""

    backend_name = "memory"

    def __init__(self) -> None:
        self._records: Dict[str, Dict[str, Tuple[int, Dict[str, Any]]]] = {}
        self._seq = itertools.count()

    def _insert(self, kind: str, record_id: str, user_id: str, data: Dict[str, Any]) -> None:
        self._records.setdefault(kind, {})[record_id] = (next(self._seq), copy.deepcopy(data))

    def _select(self, kind: str, user_id: str) -> List[Tuple[int, Dict[str, Any]]]:
        return [
            (seq, copy.deepcopy(data))
            for seq, data in self._records.get(kind, {}).values()
            if data.get("userId") == user_id
        ]

    def _get(self, kind: str, record_id: str) -> Optional[Dict[str, Any]]:
        row = self._records.get(kind, {}).get(record_id)
        return copy.deepcopy(row[1]) if row else None

    def _replace(self, kind: str, record_id: str, data: Dict[str, Any]) -> None:
        seq, _ = self._records[kind][record_id]
        self._records[kind][record_id] = (seq, copy.deepcopy(data))

    def _delete(self, kind: str, record_id: str) -> bool:
        return self._records.get(kind, {}).pop(record_id, None) is not None

    def __len__(self) -> int:  # pragma: no cover - trivial
        return sum(len(v) for v in self._records.values())


class RedisStorage(Storage):
    """Redis-backed storage with namespaced keys.

    Layout under `prefix`:
    - {kind}:{id}            JSON {"seq": int, "data": {...}}
    - {kind}:user:{user_id}  set of record ids owned by the user
    - {kind}:seq             insertion counter

    Parameters
    - url: full redis URL, if provided (takes precedence over host/port/db/password)
    - host, port, db, password: standard Redis connection fields
    - prefix: string prefix for namespacing keys
    - client: an already-configured redis client (used as-is, no ping)
    """

    backend_name = "redis"

    def __init__(
        self,
        *,
        url: Optional[str] = None,
        host: Optional[str] = None,
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
        prefix: str = "intelimed:",
        client: Any = None,
    ) -> None:
        self._prefix = prefix
        if client is not None:
            self.r = client
            return

        try:
            import redis  # type: ignore
        except Exception as e:  # pragma: no cover - import error path
            raise RuntimeError(f"Redis library not available: {e}")

        if url:
            self.r = redis.from_url(url, decode_responses=True)
        else:
            self.r = redis.Redis(host=host, port=port, db=db, password=password, decode_responses=True)

        try:
            self.r.ping()
        except Exception as e:  # pragma: no cover - network error path
            raise RuntimeError(f"Cannot connect to Redis: {e}")

    def _record_key(self, kind: str, record_id: str) -> str:
        return f"{self._prefix}{kind}:{record_id}"

    def _user_key(self, kind: str, user_id: str) -> str:
        return f"{self._prefix}{kind}:user:{user_id}"

    def _load(self, raw: Optional[str]) -> Optional[Dict[str, Any]]:
        if not raw:
            return None
        return json.loads(raw)

    def _insert(self, kind: str, record_id: str, user_id: str, data: Dict[str, Any]) -> None:
        seq = int(self.r.incr(f"{self._prefix}{kind}:seq"))
        pipe = self.r.pipeline()
        pipe.set(self._record_key(kind, record_id), json.dumps({"seq": seq, "data": data}))
        pipe.sadd(self._user_key(kind, user_id), record_id)
        pipe.execute()

    def _select(self, kind: str, user_id: str) -> List[Tuple[int, Dict[str, Any]]]:
        ids = sorted(self.r.smembers(self._user_key(kind, user_id)) or [])
        if not ids:
            return []
        out: List[Tuple[int, Dict[str, Any]]] = []
        for raw in self.r.mget([self._record_key(kind, rid) for rid in ids]):
            envelope = self._load(raw)
            # Index entries can outlive records deleted by another process
            if envelope is not None:
                out.append((int(envelope["seq"]), envelope["data"]))
        return out

    def _get(self, kind: str, record_id: str) -> Optional[Dict[str, Any]]:
        envelope = self._load(self.r.get(self._record_key(kind, record_id)))
        return envelope["data"] if envelope else None

    def _replace(self, kind: str, record_id: str, data: Dict[str, Any]) -> None:
        key = self._record_key(kind, record_id)
        envelope = self._load(self.r.get(key)) or {"seq": 0}
        self.r.set(key, json.dumps({"seq": envelope["seq"], "data": data}))

    def _delete(self, kind: str, record_id: str) -> bool:
        data = self._get(kind, record_id)
        if data is None:
            return False
        pipe = self.r.pipeline()
        pipe.delete(self._record_key(kind, record_id))
        pipe.srem(self._user_key(kind, data.get("userId", "")), record_id)
        pipe.execute()
        return True


__all__ = ["Storage", "InMemoryStorage", "RedisStorage"]
