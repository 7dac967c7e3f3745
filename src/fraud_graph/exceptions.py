from typing import Any, Dict, Union


class FraudGraphError(Exception):
    """Base class for errors raised by the fraud graph services."""


class InvalidInputError(FraudGraphError):
    """A request payload failed boundary validation."""


class NotFoundError(FraudGraphError):
    """A requested user or transaction does not exist."""


class UserNotFoundError(NotFoundError):
    """A transaction referenced a participant that does not exist."""

    def __init__(self, role: str, user_id: str) -> None:
        self.role = role
        self.user_id = user_id
        super().__init__(f"{role} user with ID {user_id} does not exist")


class GraphQueryError(FraudGraphError):
    """Exception for failed graph queries."""

    def __init__(self, exception: Union[str, Dict]) -> None:
        if isinstance(exception, dict):
            self.message = exception["message"] if "message" in exception else "unknown"
            self.details = exception["details"] if "details" in exception else "unknown"
        else:
            self.message = exception
            self.details = "unknown"
        super().__init__(self.message)

    def get_message(self) -> str:
        return self.message

    def get_details(self) -> Any:
        return self.details
