"""In-memory registry of research sessions.

Each session owns one StageEngine (and with it one graph and one
scheduler). The model call service is shared across sessions.
"""

import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

import structlog

from got_pipeline.config.settings import Settings, get_settings
from got_pipeline.llm.chains import ModelCallService
from got_pipeline.models.context import Credentials
from got_pipeline.pipeline.engine import StageEngine, create_engine

logger = structlog.get_logger(__name__)


@dataclass
class Session:
    session_id: str
    engine: StageEngine
    created_at: datetime = field(default_factory=datetime.now)
    lock: threading.Lock = field(default_factory=threading.Lock)


class SessionNotFoundError(KeyError):
    """Session id is unknown or already closed."""
    pass


class SessionRegistry:
    """Thread-safe map of session id to engine."""

    def __init__(
        self,
        model_service_factory: Optional[Callable[[], ModelCallService]] = None,
        settings: Optional[Settings] = None,
    ):
        self._model_service_factory = model_service_factory
        self._model_service: Optional[ModelCallService] = None
        self.settings = settings or get_settings()
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    def _shared_model_service(self) -> Optional[ModelCallService]:
        if self._model_service is None and self._model_service_factory is not None:
            self._model_service = self._model_service_factory()
        return self._model_service

    def create(self, credentials: Credentials) -> Session:
        with self._lock:
            engine = create_engine(
                credentials,
                model_service=self._shared_model_service(),
                settings=self.settings,
            )
            session = Session(session_id=uuid.uuid4().hex[:12], engine=engine)
            self._sessions[session.session_id] = session

        logger.info("session_created", session_id=session.session_id)
        return session

    def get(self, session_id: str) -> Session:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def list(self) -> list[Session]:
        with self._lock:
            return sorted(self._sessions.values(), key=lambda s: s.created_at, reverse=True)

    def close(self, session_id: str) -> None:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            raise SessionNotFoundError(session_id)
        session.engine.scheduler.shutdown(wait=False)
        logger.info("session_closed", session_id=session_id)

    def close_all(self) -> None:
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            session.engine.scheduler.shutdown(wait=False)
        logger.info("sessions_closed", count=len(sessions))
