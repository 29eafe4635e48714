"""
Job status state machine.

    scheduled -> posted | failed | canceled

All three outcomes are terminal. Nothing leaves a terminal state; a retry or
reschedule creates a new job instead.
"""
from enum import Enum
from typing import Dict, FrozenSet, Union


class JobStatus(str, Enum):
    """States a scheduled job can occupy"""
    SCHEDULED = "scheduled"
    POSTED = "posted"
    FAILED = "failed"
    CANCELED = "canceled"


TERMINAL_STATES: FrozenSet[JobStatus] = frozenset({
    JobStatus.POSTED,
    JobStatus.FAILED,
    JobStatus.CANCELED,
})

TRANSITIONS: Dict[JobStatus, FrozenSet[JobStatus]] = {
    JobStatus.SCHEDULED: TERMINAL_STATES,
    JobStatus.POSTED: frozenset(),
    JobStatus.FAILED: frozenset(),
    JobStatus.CANCELED: frozenset(),
}


def is_terminal(status: Union[JobStatus, str]) -> bool:
    return JobStatus(status) in TERMINAL_STATES


def can_transition(current: Union[JobStatus, str], target: Union[JobStatus, str]) -> bool:
    """Whether ``current -> target`` is a legal transition."""
    return JobStatus(target) in TRANSITIONS[JobStatus(current)]
