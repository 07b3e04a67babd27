"""Shared constants and stub collaborators for tests."""

from tests.helpers.clock import CUSTOMER, T0, TENANT, at
from tests.helpers.stub_backends import (
    StubClassifierBackend,
    StubModifierBackend,
    StubOrderBackend,
)

__all__ = [
    "CUSTOMER",
    "T0",
    "TENANT",
    "at",
    "StubClassifierBackend",
    "StubModifierBackend",
    "StubOrderBackend",
]
