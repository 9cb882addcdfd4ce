"""Orchestration over the circle services."""

from geuttae.pipelines.circle_session import (
    AttendanceMark,
    BusyAction,
    CircleSession,
    MarkState,
    SessionState,
)

__all__ = [
    "AttendanceMark",
    "BusyAction",
    "CircleSession",
    "MarkState",
    "SessionState",
]
