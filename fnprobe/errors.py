"""Typed, user-readable errors surfaced by discovery and validation."""

from __future__ import annotations


class FunctionsError(Exception):
    """Base class for every error this package surfaces to its caller."""


class ValidationError(FunctionsError):
    """The source tree or its SDK does not meet deploy requirements."""


class AllocationError(FunctionsError):
    """No local port could be allocated for the discovery server."""


class SpawnError(FunctionsError):
    """A single attempt to bring up the supervised server failed."""


class DiscoveryError(FunctionsError):
    """Functions could not be discovered from the source tree."""


class RetryBudgetExhausted(DiscoveryError):
    def __init__(self, attempts: int) -> None:
        super().__init__(f"Failed to bring up server after {attempts} attempts.")
        self.attempts = attempts
