"""
Monitoring System
=================

Collects transformation events, errors and performance metrics emitted by
the mediator. Keeps bounded in-process histories and mirrors every entry to
the memory store (best-effort).

Debug sessions group arbitrary diagnostic payloads under one id. A session
is active until ended; its data can be read back from this process or,
after a restart, from the mirrored records.
"""

import copy
import logging
import traceback
import uuid
from collections import deque
from datetime import datetime
from typing import Any, Deque, Dict, List, Optional

from memory_store.memory_store import MemoryRecord, MemoryStore
from memory_store.resilient_store import ensure_resilient

logger = logging.getLogger(__name__)


def _matches(entry: Dict[str, Any], filters: Optional[Dict[str, Any]]) -> bool:
    if not filters:
        return True
    return all(entry.get(key) == value for key, value in filters.items())


class MonitoringSystem:
    """
    Event sink for the mediator.

    Example:
        >>> monitoring = MonitoringSystem(memory_store)
        >>> await monitoring.log_transformation_event({"type": "translation", "sourceModule": "a"})
        >>> monitoring.get_performance_report()
    """

    def __init__(self, memory_store: Optional[MemoryStore] = None, history_size: int = 1000):
        self.memory_store = ensure_resilient(memory_store)
        self._events: Deque[Dict[str, Any]] = deque(maxlen=history_size)
        self._errors: Deque[Dict[str, Any]] = deque(maxlen=history_size)
        self._metrics: Deque[Dict[str, Any]] = deque(maxlen=history_size)
        self.history_size = history_size
        self._debug_sessions: Dict[str, Dict[str, Any]] = {}

    async def log_transformation_event(self, event: Dict[str, Any]) -> str:
        entry = {"id": uuid.uuid4().hex, "timestamp": datetime.now().isoformat(), **event}
        self._events.append(entry)
        logger.info(
            f"📡 [Monitoring] {entry.get('type', 'event')} "
            f"{entry.get('sourceModule', '?')} -> {entry.get('targetModule', '?')} "
            f"status={entry.get('status', 'n/a')}"
        )
        await self._mirror("monitoring_transformation_event", entry, ["monitoring", "event", str(entry.get("type"))])
        return entry["id"]

    async def log_error(self, error: BaseException, context: Optional[Dict[str, Any]] = None) -> str:
        entry = {
            "id": uuid.uuid4().hex,
            "timestamp": datetime.now().isoformat(),
            "errorType": type(error).__name__,
            "message": str(error),
            "stack": "".join(traceback.format_exception(type(error), error, error.__traceback__)),
            **(context or {}),
        }
        self._errors.append(entry)
        logger.error(f"❌ [Monitoring] {entry['errorType']} in {entry.get('operation', 'unknown')}: {entry['message']}")
        await self._mirror("monitoring_error", entry, ["monitoring", "error", str(entry.get("operation"))])
        return entry["id"]

    async def record_performance_metrics(self, operation: str, metrics: Dict[str, Any]) -> str:
        entry = {
            "id": uuid.uuid4().hex,
            "timestamp": datetime.now().isoformat(),
            "operation": operation,
            **metrics,
        }
        self._metrics.append(entry)
        await self._mirror("monitoring_performance", entry, ["monitoring", "performance", operation])
        return entry["id"]

    def get_transformation_history(self, filters: Optional[Dict[str, Any]] = None, limit: int = 100) -> List[Dict[str, Any]]:
        """Most recent events first."""
        return [e for e in reversed(self._events) if _matches(e, filters)][:limit]

    def get_error_history(self, filters: Optional[Dict[str, Any]] = None, limit: int = 100) -> List[Dict[str, Any]]:
        return [e for e in reversed(self._errors) if _matches(e, filters)][:limit]

    def get_performance_report(self, operation: Optional[str] = None) -> Dict[str, Dict[str, Any]]:
        """
        Aggregate numeric metrics per operation.

        Returns:
            {operation: {"count": n, metric: {"avg", "min", "max"}}}
        """
        grouped: Dict[str, List[Dict[str, Any]]] = {}
        for entry in self._metrics:
            if operation is None or entry["operation"] == operation:
                grouped.setdefault(entry["operation"], []).append(entry)

        report: Dict[str, Dict[str, Any]] = {}
        for name, entries in grouped.items():
            summary: Dict[str, Any] = {"count": len(entries)}
            numeric_keys = {
                key for entry in entries for key, value in entry.items()
                if isinstance(value, (int, float)) and not isinstance(value, bool)
            }
            for key in sorted(numeric_keys):
                values = [e[key] for e in entries if isinstance(e.get(key), (int, float)) and not isinstance(e.get(key), bool)]
                summary[key] = {
                    "avg": sum(values) / len(values),
                    "min": min(values),
                    "max": max(values),
                }
            report[name] = summary
        return report

    # ------------------------------------------------------------------
    # Debug sessions
    # ------------------------------------------------------------------

    async def create_debug_session(self, context: Optional[Dict[str, Any]] = None) -> str:
        session_id = f"debug_session_{uuid.uuid4().hex[:12]}"
        session = {
            "id": session_id,
            "startTime": datetime.now().isoformat(),
            "status": "active",
            "context": dict(context or {}),
            "data": [],
        }
        self._debug_sessions[session_id] = session
        self._trim_debug_sessions()
        logger.info(f"🐞 [Monitoring] Debug session {session_id} started")
        await self._mirror("monitoring_debug_session", _session_snapshot(session), ["monitoring", "debug_session", session_id])
        return session_id

    async def log_debug_data(self, session_id: str, data: Any) -> bool:
        """Append a payload to an active session. False for unknown or ended sessions."""
        session = self._debug_sessions.get(session_id)
        if session is None or session["status"] != "active":
            logger.warning(f"⚠️ [Monitoring] Debug session {session_id} not active")
            return False
        entry = {"timestamp": datetime.now().isoformat(), "data": data}
        session["data"].append(entry)
        await self._mirror("monitoring_debug_data", {"sessionId": session_id, "entry": entry}, ["monitoring", "debug_data", session_id])
        return True

    async def end_debug_session(self, session_id: str) -> bool:
        session = self._debug_sessions.get(session_id)
        if session is None or session["status"] != "active":
            logger.warning(f"⚠️ [Monitoring] Debug session {session_id} not active")
            return False
        session["status"] = "completed"
        session["endTime"] = datetime.now().isoformat()
        logger.info(f"🐞 [Monitoring] Debug session {session_id} ended ({len(session['data'])} entries)")
        await self._mirror("monitoring_debug_session", _session_snapshot(session), ["monitoring", "debug_session", session_id])
        return True

    async def get_debug_session_data(self, session_id: str) -> Optional[Dict[str, Any]]:
        """
        Session with its data entries, oldest first.

        Sessions not held in this process are rebuilt from the memory store.
        Returns None when the session is unknown.
        """
        session = self._debug_sessions.get(session_id)
        if session is not None:
            return copy.deepcopy(session)
        if self.memory_store is None:
            return None

        snapshots = await self.memory_store.find({"type": "monitoring_debug_session", "content.id": session_id})
        if not snapshots:
            return None
        # An ended snapshot supersedes the start snapshot
        latest = next((s for s in snapshots if s.content.get("status") != "active"), snapshots[0])
        restored = dict(latest.content)
        entries = await self.memory_store.find(
            {"type": "monitoring_debug_data", "content.sessionId": session_id}, sort_desc=False
        )
        restored["data"] = sorted((r.content["entry"] for r in entries), key=lambda e: e["timestamp"])
        return restored

    def _trim_debug_sessions(self):
        # Oldest completed sessions go first; active ones are kept
        completed = [sid for sid, s in self._debug_sessions.items() if s["status"] != "active"]
        while len(self._debug_sessions) > self.history_size and completed:
            del self._debug_sessions[completed.pop(0)]

    async def _mirror(self, record_type: str, entry: Dict[str, Any], tags: List[str]):
        if self.memory_store is None:
            return
        await self.memory_store.save(MemoryRecord(type=record_type, content=entry, tags=tags))


def _session_snapshot(session: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in session.items() if key != "data"}
