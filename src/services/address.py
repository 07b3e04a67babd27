"""Delivery address extraction.

Address parsing is an external collaborator; the ingest service only
depends on the AddressExtractor protocol. SimpleAddressExtractor is the
deterministic default: it accepts address-shaped text as-is.
"""

from typing import Protocol

from src.orchestrator.nl_engine.rule_classifier import looks_like_address

MIN_ADDRESS_LENGTH = 10


class AddressExtractor(Protocol):
    """Turns free text into a delivery address, or None if it is not one."""

    def extract(self, text: str) -> str | None: ...


class SimpleAddressExtractor:
    """Accepts text with street/flat keywords or a postal code."""

    def extract(self, text: str) -> str | None:
        lines = [" ".join(line.split()).strip(" ,") for line in (text or "").splitlines()]
        cleaned = ", ".join(line for line in lines if line)
        if len(cleaned) < MIN_ADDRESS_LENGTH or not looks_like_address(cleaned):
            return None
        return cleaned
