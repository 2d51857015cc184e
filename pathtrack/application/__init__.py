"""Application services."""

from .sessions import (
    AnalysisSession,
    SessionService,
    build_session_service,
    configure_session_service,
    get_session_service,
    reset_session_state,
)

__all__ = [
    "AnalysisSession",
    "SessionService",
    "build_session_service",
    "configure_session_service",
    "get_session_service",
    "reset_session_state",
]
