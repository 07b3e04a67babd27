"""Tagged outcome of a model call.

Model backends never hand back a permissive default object. They return
exactly one of:

- Ok(value): output passed shape validation.
- Invalid(raw_payload, error): the model answered, but not in shape.
- Unavailable(reason): no answer (no credentials, budget, timeout, API error).

Callers must branch on the tag; both failure tags lead to the rule path.
"""

from dataclasses import dataclass
from typing import Any, Generic, TypeVar, Union

from src.orchestrator.models.intent import FallbackReason

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Validated model output."""

    value: T


@dataclass(frozen=True)
class Invalid:
    """Model output that failed validation."""

    raw_payload: Any
    error: str


@dataclass(frozen=True)
class Unavailable:
    """No usable model answer."""

    reason: FallbackReason
    detail: str = ""


ModelOutcome = Union[Ok[T], Invalid, Unavailable]
