"""
In-memory session context storage.

This module provides asyncio-safe storage for:
- Bounded per-session conversation history and routing decisions
- Per-session locks so one session's exchanges are serialized
- Idle-session expiry with a lazily started background sweeper
- Derived session statistics

All state is process memory and is lost on restart.
"""

import asyncio
from collections import Counter
from contextlib import asynccontextmanager
from dataclasses import dataclass, asdict
from datetime import datetime, timedelta
from typing import Any, AsyncIterator, Dict, List, Optional

import psutil
from loguru import logger

from .models import (
    ConversationFlow,
    ConversationStep,
    RoutingDecision,
    SessionContext,
    SessionStats,
)
from .utils import get_utc_datetime


DEFAULT_HISTORY_LIMIT = 10
DEFAULT_IDLE_TIMEOUT_MINUTES = 60
DEFAULT_SWEEP_INTERVAL_MINUTES = 60
RECENT_TOPICS_WINDOW = 5


@dataclass
class StoreMetrics:
    """Counters tracked by the session store."""
    sessions_created: int = 0
    sessions_cleared: int = 0
    sessions_expired: int = 0
    exchanges_appended: int = 0
    missing_session_appends: int = 0
    sweeps_run: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def count_agent_switches(history: List[ConversationStep]) -> int:
    """Adjacent history entries handled by different specialists."""
    return sum(
        1 for previous, current in zip(history, history[1:])
        if previous.agent_id != current.agent_id
    )


def _mode(values: List[str]) -> Optional[str]:
    """Most frequent value; first seen wins ties."""
    if not values:
        return None
    return Counter(values).most_common(1)[0][0]


def analyze_conversation_flow(context: SessionContext) -> ConversationFlow:
    """Dominant topic, switching frequency and recent topics of a session."""
    history = context.conversation_history
    if not history:
        return ConversationFlow()

    switches = count_agent_switches(history)
    recent_topics: List[str] = []
    for decision in context.routing_decisions[-RECENT_TOPICS_WINDOW:]:
        if decision.analyzed_intent not in recent_topics:
            recent_topics.append(decision.analyzed_intent)

    return ConversationFlow(
        dominant_topic=_mode(context.intent_history) or "mixed",
        agent_switching_frequency=switches / max(len(history) - 1, 1),
        conversation_depth=len(history),
        recent_topics=recent_topics
    )


class SessionContextStore:
    """Owns every SessionContext and is their only mutator."""

    def __init__(
        self,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        idle_timeout_minutes: int = DEFAULT_IDLE_TIMEOUT_MINUTES,
        sweep_interval_minutes: int = DEFAULT_SWEEP_INTERVAL_MINUTES,
        auto_sweep: bool = True
    ):
        """Initialize the session store.

        Args:
            history_limit: Exchanges retained per session, oldest dropped first (default: 10)
            idle_timeout_minutes: Idle time after which a session is swept (default: 60 minutes)
            sweep_interval_minutes: How often the background sweeper runs (default: 60 minutes)
            auto_sweep: Start the background sweeper on first use
        """
        if history_limit < 1:
            raise ValueError("history_limit must be at least 1")

        self.history_limit = history_limit
        self.idle_timeout = timedelta(minutes=idle_timeout_minutes)
        self.sweep_interval = timedelta(minutes=sweep_interval_minutes)

        self._contexts: Dict[str, SessionContext] = {}
        self._session_locks: Dict[str, asyncio.Lock] = {}
        # Callers holding or waiting on each session lock
        self._lock_users: Dict[str, int] = {}
        self._lock = asyncio.Lock()
        self._metrics = StoreMetrics()

        # Background sweeper (started when the first async method is called)
        self._sweep_task: Optional[asyncio.Task] = None
        self._tasks_started = not auto_sweep

    def _ensure_background_tasks_started(self):
        """Start the sweeper on the running loop if it is not running yet."""
        if self._tasks_started:
            return

        try:
            asyncio.get_running_loop()
        except RuntimeError:
            # No running event loop; try again from the next async call
            return

        async def sweep_worker():
            while True:
                await asyncio.sleep(self.sweep_interval.total_seconds())
                try:
                    await self.sweep_expired(self.idle_timeout)
                except Exception as e:
                    logger.error("Session sweep failed", error=str(e), error_type=type(e).__name__)

        self._sweep_task = asyncio.create_task(sweep_worker())
        self._tasks_started = True
        logger.info(
            "Session sweeper started",
            interval_minutes=self.sweep_interval.total_seconds() / 60,
            idle_timeout_minutes=self.idle_timeout.total_seconds() / 60
        )

    async def shutdown(self):
        """Stop the background sweeper."""
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None

    def _lock_for(self, session_id: str) -> asyncio.Lock:
        lock = self._session_locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._session_locks[session_id] = lock
        return lock

    def _release_lock_user(self, session_id: str) -> None:
        remaining = self._lock_users.get(session_id, 1) - 1
        if remaining > 0:
            self._lock_users[session_id] = remaining
            return

        self._lock_users.pop(session_id, None)
        # A lock is only dropped once nobody holds or awaits it and its session is gone
        if session_id not in self._contexts:
            self._session_locks.pop(session_id, None)

    def _lock_in_use(self, session_id: str) -> bool:
        return self._lock_users.get(session_id, 0) > 0

    @asynccontextmanager
    async def session_lock(self, session_id: str) -> AsyncIterator[None]:
        """Exclusive access to one session; other sessions are unaffected."""
        lock = self._lock_for(session_id)
        self._lock_users[session_id] = self._lock_users.get(session_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._release_lock_user(session_id)

    async def get_or_create(self, session_id: str, current_query: str = "") -> SessionContext:
        """Return the session's context, creating an empty one on first use."""
        self._ensure_background_tasks_started()

        async with self._lock:
            context = self._contexts.get(session_id)
            if context is None:
                context = SessionContext(session_id=session_id, current_query=current_query)
                self._contexts[session_id] = context
                self._metrics.sessions_created += 1
                logger.info("Created session context", session_id=session_id)
            else:
                context.current_query = current_query
                logger.debug(
                    "Retrieved session context",
                    session_id=session_id,
                    previous_exchanges=len(context.conversation_history)
                )
            return context

    async def get(self, session_id: str) -> Optional[SessionContext]:
        async with self._lock:
            return self._contexts.get(session_id)

    async def append_exchange(
        self,
        session_id: str,
        step: ConversationStep,
        decision: RoutingDecision
    ) -> None:
        """Append one exchange, trimming both lists to the history limit."""
        async with self._lock:
            context = self._contexts.get(session_id)
            if context is None:
                self._metrics.missing_session_appends += 1
                logger.warning("No context found for session during update", session_id=session_id)
                return

            context.conversation_history.append(step)
            context.routing_decisions.append(decision)

            overflow = len(context.conversation_history) - self.history_limit
            if overflow > 0:
                del context.conversation_history[:overflow]
            overflow = len(context.routing_decisions) - self.history_limit
            if overflow > 0:
                del context.routing_decisions[:overflow]

            context.current_agent = step.agent_id
            context.message_count += 1
            context.last_activity_at = get_utc_datetime()
            self._metrics.exchanges_appended += 1

            logger.info(
                "Updated session context",
                session_id=session_id,
                exchanges=len(context.conversation_history),
                current_agent=context.current_agent
            )

    async def clear(self, session_id: str) -> bool:
        """Remove a session; returns whether one existed."""
        async with self.session_lock(session_id):
            async with self._lock:
                existed = self._contexts.pop(session_id, None) is not None
                if existed:
                    self._metrics.sessions_cleared += 1

        logger.info("Session clear requested", session_id=session_id, existed=existed)
        return existed

    async def sweep_expired(self, max_idle: Optional[timedelta] = None, now: Optional[datetime] = None) -> int:
        """
        Remove sessions idle for longer than max_idle.

        Sessions whose lock is held or awaited are skipped; the others are
        deleted only while holding their own lock.

        Returns:
            int: Number of sessions removed
        """
        max_idle = max_idle if max_idle is not None else self.idle_timeout
        now = now or get_utc_datetime()

        async with self._lock:
            candidates = [
                session_id for session_id, context in self._contexts.items()
                if now - context.last_activity_at > max_idle
            ]

        removed = 0
        for session_id in candidates:
            if self._lock_in_use(session_id):
                continue
            async with self.session_lock(session_id):
                async with self._lock:
                    context = self._contexts.get(session_id)
                    # Re-check: activity may have happened while waiting
                    if context is None or now - context.last_activity_at <= max_idle:
                        continue
                    del self._contexts[session_id]
                    removed += 1

        self._metrics.sweeps_run += 1
        self._metrics.sessions_expired += removed
        if removed:
            logger.info("Expired idle sessions", removed=removed, remaining=len(self._contexts))
        return removed

    def session_count(self) -> int:
        return len(self._contexts)

    async def get_session_stats(self, session_id: str) -> Optional[SessionStats]:
        """Derived statistics, or None when the session does not exist."""
        async with self._lock:
            context = self._contexts.get(session_id)
            if context is None:
                return None

            history = context.conversation_history
            return SessionStats(
                session_id=session_id,
                message_count=context.message_count,
                history_length=len(history),
                agent_switches=count_agent_switches(history),
                most_used_agent=_mode([step.agent_id for step in history]),
                dominant_intent=_mode(context.intent_history),
                current_agent=context.current_agent,
                session_duration_seconds=max(
                    (context.last_activity_at - context.created_at).total_seconds(), 0.0
                ),
                created_at=context.created_at,
                last_activity_at=context.last_activity_at,
                conversation_flow=analyze_conversation_flow(context)
            )

    def get_health_status(self) -> Dict[str, Any]:
        """Session counts, counters and process memory."""
        process = psutil.Process()
        return {
            "status": "healthy",
            "active_sessions": len(self._contexts),
            "history_limit": self.history_limit,
            "idle_timeout_minutes": self.idle_timeout.total_seconds() / 60,
            "sweeper_running": self._sweep_task is not None and not self._sweep_task.done(),
            "memory_usage_mb": round(process.memory_info().rss / 1024 / 1024, 2),
            "metrics": self._metrics.to_dict()
        }
