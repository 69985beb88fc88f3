"""
Status lifecycles for builds and snapshot processing

Both follow pending -> processing -> {completed, failed}; a run that never
started may also fail straight from pending. Terminal statuses are final.
"""

from diffit.core.exceptions import InvalidStatusTransitionError
from diffit.storage.models import BuildStatus, SnapshotStatus

BUILD_TRANSITIONS: dict[str, set[str]] = {
    BuildStatus.PENDING.value: {BuildStatus.PROCESSING.value, BuildStatus.FAILED.value},
    BuildStatus.PROCESSING.value: {BuildStatus.COMPLETED.value, BuildStatus.FAILED.value},
    BuildStatus.COMPLETED.value: set(),
    BuildStatus.FAILED.value: set(),
}

SNAPSHOT_TRANSITIONS: dict[str, set[str]] = {
    SnapshotStatus.PENDING.value: {SnapshotStatus.PROCESSING.value, SnapshotStatus.FAILED.value},
    SnapshotStatus.PROCESSING.value: {SnapshotStatus.COMPLETED.value, SnapshotStatus.FAILED.value},
    SnapshotStatus.COMPLETED.value: set(),
    SnapshotStatus.FAILED.value: set(),
}

TERMINAL_STATUSES = {BuildStatus.COMPLETED.value, BuildStatus.FAILED.value}


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def check_transition(
    entity: str,
    transitions: dict[str, set[str]],
    current: str,
    requested: str,
) -> bool:
    """
    Validate a status change.

    Returns:
        True if the status must change, False if it already has the requested value

    Raises:
        InvalidStatusTransitionError: If the lifecycle forbids the change
    """
    if requested not in transitions:
        raise InvalidStatusTransitionError(entity, current, requested)
    if current == requested:
        return False
    if requested not in transitions.get(current, set()):
        raise InvalidStatusTransitionError(entity, current, requested)
    return True
