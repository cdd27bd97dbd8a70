class AppError(Exception):
    """Base class for all application exceptions."""
    def __init__(self, message: str, status_code: int = 500, details: dict = None):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationFailed(AppError):
    """Raised when a candidate grid breaks one or more hard scheduling constraints."""
    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__(
            f"Timetable failed validation with {len(self.errors)} error(s)",
            status_code=422,
            details={"errors": self.errors},
        )


class NoOpEdit(AppError):
    """Signals that a submitted grid is identical to the current one. Nothing was written."""
    def __init__(self, timetable_id: str):
        self.timetable_id = timetable_id
        super().__init__("No changes detected.", status_code=200, details={"timetable_id": timetable_id})


class RestoreNoOp(AppError):
    """Signals that the requested history version already matches the current grid."""
    def __init__(self, timetable_id: str, version: int):
        self.timetable_id = timetable_id
        self.version = version
        super().__init__(
            f"Version {version} is already the current state; restore resulted in no change.",
            status_code=409,
            details={"timetable_id": timetable_id, "version": version},
        )


class VersionNotFound(AppError):
    def __init__(self, timetable_id: str, version: int):
        self.timetable_id = timetable_id
        self.version = version
        super().__init__(
            f"Version {version} not found in history.",
            status_code=404,
            details={"timetable_id": timetable_id, "version": version},
        )


class TimetableNotFound(AppError):
    def __init__(self, timetable_id: str):
        super().__init__(f"Timetable with id {timetable_id} not found", status_code=404)


class DuplicateTimetable(AppError):
    def __init__(self, level: int, section: str):
        super().__init__(
            f"A timetable for level {level} section {section!r} already exists",
            status_code=409,
            details={"level": level, "section": section},
        )


class InvalidTransition(AppError):
    """Raised when a lifecycle operation is not allowed from the timetable's current status."""
    def __init__(self, message: str):
        super().__init__(message, status_code=409)


class StorageConflict(AppError):
    """Raised when a concurrent writer won the read-modify-write race. Retry with a fresh read."""
    def __init__(self, timetable_id: str):
        super().__init__(
            f"Timetable {timetable_id} was modified concurrently; retry the operation",
            status_code=409,
            details={"timetable_id": timetable_id, "retryable": True},
        )


class LedgerIntegrityError(AppError):
    """Raised when the history chain of a timetable has a gap or a duplicate version."""
    def __init__(self, message: str, details: dict = None):
        super().__init__(message, status_code=500, details=details)


class GenerationOutputError(AppError):
    """Raised when generator output cannot be turned into a candidate timetable."""
    def __init__(self, errors: list[str]):
        self.errors = list(errors)
        super().__init__("Generated timetable could not be parsed", status_code=422, details={"errors": self.errors})
