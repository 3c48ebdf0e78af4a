from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Dict, Iterable, List, Optional
import json
import pathlib
import uuid

from .models import CalendarEvent, EventCreate
from .utils import _log_debug, ensure_aware


class EventStore(ABC):
    """Read/write contract the scheduler needs from event storage."""

    @abstractmethod
    def list_events(self,
                    user_id: str,
                    window_start: datetime,
                    window_end: datetime,
                    workspace_id: Optional[str] = None) -> List[CalendarEvent]:
        """Events owned by ``user_id`` whose start lies in the closed window."""

    @abstractmethod
    def create_event(self, event: EventCreate) -> str:
        """Persist a new event and return its id."""

    @abstractmethod
    def update_event_times(self, event_id: str, start: datetime, end: datetime) -> None:
        """Move an existing event. Raises KeyError for unknown ids."""


class AttendeeDirectory(ABC):
    @abstractmethod
    def events_for(self,
                   attendees: Iterable[str],
                   window_start: datetime,
                   window_end: datetime,
                   workspace_id: Optional[str] = None) -> Dict[str, List[CalendarEvent]]:
        """Busy events per attendee. Attendees without data are left out."""


class InMemoryEventStore(EventStore):
    """
    Process-local event store.

    With ``data_file`` set, every mutation is written to that JSON file and
    the file is loaded on construction.
    """

    def __init__(self,
                 events: Optional[Iterable[CalendarEvent]] = None,
                 data_file: Optional[pathlib.Path] = None):
        self._lock = Lock()
        self._events: Dict[str, CalendarEvent] = {}
        self.data_file = data_file
        if data_file is not None:
            self._load_from_disk()
        for ev in events or []:
            self._events[ev.id] = ev

    # -------------------------
    # persistence
    # -------------------------
    def _serialize_payload(self) -> Dict[str, Any]:
        return {
            "version": 1,
            "events": [ev.model_dump(mode="json") for ev in self._events.values()],
        }

    def _save_to_disk(self) -> None:
        if self.data_file is None:
            return
        try:
            self.data_file.write_text(json.dumps(self._serialize_payload(), ensure_ascii=False, indent=2),
                                      encoding="utf-8")
        except OSError as exc:
            _log_debug(f"[EVENT STORE] save failed: {exc}")

    def _load_from_disk(self) -> None:
        if self.data_file is None or not self.data_file.exists():
            return
        try:
            data = json.loads(self.data_file.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            _log_debug(f"[EVENT STORE] load failed: {exc}")
            return
        raw_events = data.get("events") if isinstance(data, dict) else data
        if not isinstance(raw_events, list):
            return
        for item in raw_events:
            if not isinstance(item, dict):
                continue
            try:
                ev = CalendarEvent(**item)
            except ValueError:
                continue
            self._events[ev.id] = ev

    # -------------------------
    # EventStore
    # -------------------------
    def list_events(self,
                    user_id: str,
                    window_start: datetime,
                    window_end: datetime,
                    workspace_id: Optional[str] = None) -> List[CalendarEvent]:
        with self._lock:
            found = [
                ev for ev in self._events.values()
                if ev.user_id == user_id
                and window_start <= ev.start_date <= window_end
                and (workspace_id is None or ev.workspace_id == workspace_id)
            ]
        found.sort(key=lambda ev: ev.start_date)
        return found

    def create_event(self, event: EventCreate) -> str:
        created_at = datetime.now(timezone.utc)
        event_id = uuid.uuid4().hex
        stored = CalendarEvent(
            id=event_id,
            created_at=created_at,
            **event.model_dump(exclude={"is_all_day"}),
        )
        with self._lock:
            self._events[event_id] = stored
            self._save_to_disk()
        _log_debug(f"[EVENT STORE] created {event_id} {stored.title!r}")
        return event_id

    def update_event_times(self, event_id: str, start: datetime, end: datetime) -> None:
        with self._lock:
            current = self._events.get(event_id)
            if current is None:
                raise KeyError(event_id)
            self._events[event_id] = current.model_copy(update={
                "start_date": ensure_aware(start),
                "end_date": ensure_aware(end),
                "updated_at": datetime.now(timezone.utc),
            })
            self._save_to_disk()
        _log_debug(f"[EVENT STORE] moved {event_id} -> {start.isoformat()}")

    def get(self, event_id: str) -> Optional[CalendarEvent]:
        with self._lock:
            return self._events.get(event_id)

    def all_events(self) -> List[CalendarEvent]:
        with self._lock:
            return list(self._events.values())


class InMemoryAttendeeDirectory(AttendeeDirectory):
    """Returns whatever busy data it was seeded with. Empty by default."""

    def __init__(self, busy: Optional[Dict[str, List[CalendarEvent]]] = None):
        self._busy = {k.lower(): list(v) for k, v in (busy or {}).items()}

    def events_for(self,
                   attendees: Iterable[str],
                   window_start: datetime,
                   window_end: datetime,
                   workspace_id: Optional[str] = None) -> Dict[str, List[CalendarEvent]]:
        result: Dict[str, List[CalendarEvent]] = {}
        for attendee in attendees:
            events = self._busy.get(attendee.lower())
            if events is None:
                continue
            result[attendee] = [
                ev for ev in events
                if ev.end_date > window_start and ev.start_date < window_end
            ]
        return result
