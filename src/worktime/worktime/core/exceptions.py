class DomainError(Exception):
    """Base exception for business rule violations."""


class ValidationError(DomainError):
    """Raised when input data is invalid or violates domain rules."""


class AuthorizationError(DomainError):
    """Raised when a caller lacks permission for an action."""


class NotFoundError(DomainError):
    """Raised when a referenced entity does not exist."""


# Sequencing: illegal clock event for the current LIVE state. Never retried.


class SequencingError(DomainError):
    """Raised when a clock event is out of order for the day's state."""


class AlreadyActiveSession(SequencingError):
    pass


class NoActiveSession(SequencingError):
    pass


class BreakInProgress(SequencingError):
    pass


class NoActiveBreak(SequencingError):
    pass


class RecordFinalized(SequencingError):
    """The day already carries a FINAL status."""


class SessionLimitReached(SequencingError):
    """A further session was started while multiple sessions are disabled."""


class InvariantViolation(DomainError):
    """Raised when a record's nested sessions/breaks are in an impossible shape."""


# Resolution: the record is left unfinalized and retried by the next sweep.


class ResolutionError(DomainError):
    pass


class MissingShiftPolicy(ResolutionError):
    pass


class UnresolvableTimestamp(ResolutionError):
    pass


class CollaboratorTimeout(ResolutionError):
    pass


class CollaboratorUnavailable(DomainError):
    """A collaborator is down; the current sweep must stop."""


# Conflicts


class ConflictError(DomainError):
    pass


class StaleRecordConflict(ConflictError):
    """The record was changed by another approved correction; re-file."""


class ConcurrentModification(ConflictError):
    """A versioned write lost against another writer."""
