class WorktimeError(Exception):
    """Base class for errors raised by the segmentation engine and its services."""


class NotFoundError(WorktimeError, LookupError):
    """A referenced entity id does not exist."""

    def __init__(self, entity: str, key):
        super().__init__(f"{entity} not found: {key}")
        self.entity = entity
        self.key = key


class InvalidStateError(WorktimeError, ValueError):
    """A computation was asked to work on data with no safe default."""


class PersistenceError(WorktimeError):
    """A store operation failed; the surrounding transaction was rolled back."""
