"""
Base exception hierarchy

Provides a consistent exception structure across diffit
with clear error messages and recovery hints.
"""


class DiffitError(Exception):
    """
    Base exception for all diffit errors

    Attributes:
        message: Error message
        component: Component that raised the error
        recovery_hint: Optional hint for recovery
    """

    def __init__(self, message: str, component: str = "", recovery_hint: str = ""):
        self.component = component
        self.recovery_hint = recovery_hint
        super().__init__(message)

    def __str__(self) -> str:
        msg = super().__str__()
        if self.component:
            msg = f"[{self.component}] {msg}"
        if self.recovery_hint:
            msg += f"\nRecovery: {self.recovery_hint}"
        return msg


class ValidationError(DiffitError):
    """Validation errors (input, thresholds, review preconditions)"""

    def __init__(self, message: str, recovery_hint: str = ""):
        super().__init__(message, component="Validation", recovery_hint=recovery_hint)


class ResourceNotFoundError(DiffitError):
    """Resource not found errors"""

    def __init__(self, resource: str, identifier: str, recovery_hint: str = ""):
        self.resource = resource
        self.identifier = identifier
        super().__init__(
            f"{resource} not found: {identifier}",
            component="Resource",
            recovery_hint=recovery_hint,
        )


class InvalidStatusTransitionError(DiffitError):
    """A build or snapshot status change that the lifecycle does not allow"""

    def __init__(self, entity: str, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(
            f"{entity} cannot move from '{current}' to '{requested}'",
            component="Lifecycle",
        )


class DirectoryReadError(DiffitError):
    """A directory of a compared tree could not be listed"""

    def __init__(self, path: str, reason: str = ""):
        self.path = path
        message = f"Cannot read directory: {path}"
        if reason:
            message += f" ({reason})"
        super().__init__(
            message,
            component="Reconciler",
            recovery_hint="Check that both trees exist and are readable",
        )


class DecodeError(DiffitError):
    """Raised by image decoders for unsupported or corrupt data"""

    def __init__(self, message: str):
        super().__init__(message, component="Decoder")


class ImageDecodeError(DiffitError):
    """One side of a comparison could not be decoded"""

    def __init__(self, side: str, reason: str = ""):
        self.side = side
        message = f"Failed to decode {side} image"
        if reason:
            message += f": {reason}"
        super().__init__(message, component="Comparison")


class ComparisonTimeoutError(DiffitError):
    """A single comparison exceeded its time budget"""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(
            f"Comparison did not finish within {timeout:g}s",
            component="Comparison",
            recovery_hint="Raise DIFFIT_COMPARISON_TIMEOUT_SECONDS or shrink the screenshot",
        )


class ArtifactWriteError(DiffitError):
    """A diff artifact could not be encoded or stored"""

    def __init__(self, message: str):
        super().__init__(message, component="Artifacts")


class BaselineLookupError(DiffitError):
    """The baseline index could not be queried"""

    def __init__(self, message: str):
        super().__init__(message, component="Baselines")


class BaselinePromotionError(DiffitError):
    """An approved snapshot could not be promoted to baseline"""

    def __init__(self, snapshot_id: str, reason: str = ""):
        self.snapshot_id = snapshot_id
        message = f"Failed to promote snapshot {snapshot_id} to baseline"
        if reason:
            message += f": {reason}"
        super().__init__(message, component="Review")


class BlobNotFoundError(DiffitError):
    """A stored image path does not exist in the blob store"""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Stored file not found: {path}", component="Storage")
