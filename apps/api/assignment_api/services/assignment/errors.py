from __future__ import annotations


class NoEligibleWorkError(Exception):
    """No target yielded a single contact for this distribution session."""

    def __init__(self, message: str = "Could not find a suitable campaign to assign to.") -> None:
        super().__init__(message)


class AuthorizationError(Exception):
    pass


class ExternalServiceError(Exception):
    pass


class AutoassignError(Exception):
    def __init__(self, message: str, *, is_fatal: bool = False) -> None:
        super().__init__(message)
        self.message = message
        self.is_fatal = is_fatal
