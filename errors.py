"""Error kinds raised by the finance services.

Every failure is a deterministic function of the input and the persisted
state, so none of these are retried. The HTTP layer maps each kind to a
status code in ``main.py``.
"""


class FinanceError(Exception):
    label = "Error"


class NotFoundError(FinanceError, LookupError):
    """A referenced entity does not exist at all."""

    label = "Not found"

    def __init__(self, resource: str, field: str, value: object) -> None:
        super().__init__(f"{resource} not found with {field}: {value}")
        self.resource = resource


class DuplicateError(FinanceError):
    """A unique name is already taken."""

    label = "Conflict"

    def __init__(self, resource: str, field: str, value: object) -> None:
        super().__init__(f"{resource} already exists with {field}: {value}")
        self.resource = resource


class ForbiddenError(FinanceError):
    """The entity exists but the caller may not touch it."""

    label = "Access denied"

    @classmethod
    def for_entity(cls, resource: str, entity_id: int) -> "ForbiddenError":
        return cls(f"Access denied to {resource} with id: {entity_id}")


class ValidationError(FinanceError, ValueError):
    """A business rule rejected the request."""

    label = "Validation error"


class UnauthenticatedError(FinanceError):
    label = "Unauthenticated"
