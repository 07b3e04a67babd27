"""Typed domain exceptions for the order decision engine.

These exceptions give the ingest pipeline stronger contracts than string
matching. The ingest service catches them and converts them to error
results.

Usage:
    # In service layer
    raise ConcurrentUpdateError("Order", order.id)

    # In ingest
    except ConcurrentUpdateError as e:
        return error_result("E-4002", entity=e.resource_type, identifier=e.identifier)
"""


class DomainError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class NotFoundError(DomainError):
    """Resource was not found. Maps to HTTP 404."""

    def __init__(self, resource_type: str, identifier: str) -> None:
        super().__init__(f"{resource_type} '{identifier}' not found")
        self.resource_type = resource_type
        self.identifier = identifier


class ConflictError(DomainError):
    """Resource conflict. Maps to HTTP 409."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class ConcurrentUpdateError(ConflictError):
    """Compare-and-swap write lost against a concurrent writer."""

    def __init__(self, resource_type: str, identifier: str) -> None:
        super().__init__(
            f"{resource_type} '{identifier}' was modified concurrently"
        )
        self.resource_type = resource_type
        self.identifier = identifier


class InvalidTransitionError(ConflictError):
    """Conversation stage transition not allowed from the current stage."""

    def __init__(self, stage: str, event: str) -> None:
        super().__init__(f"Transition '{event}' is not legal from stage '{stage}'")
        self.stage = stage
        self.event = event
