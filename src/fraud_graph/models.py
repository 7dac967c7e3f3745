import math
import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from .exceptions import InvalidInputError

USER_LABEL = "User"
TRANSACTION_LABEL = "Transaction"

# attribute name on the wire -> (graph property, edge type)
SHARED_ATTRIBUTE_EDGES: Dict[str, tuple[str, str]] = {
    "email": ("email", "SHARED_EMAIL"),
    "phone": ("phone", "SHARED_PHONE"),
    "address": ("address", "SHARED_ADDRESS"),
}
SHARED_PAYMENT_METHOD = "SHARED_PAYMENT_METHOD"

SHARED_SIGNAL_EDGES: Dict[str, tuple[str, str]] = {
    "ipAddress": ("ip_address", "SHARED_IP"),
    "deviceId": ("device_id", "SHARED_DEVICE"),
}

SENT_TO = "SENT_TO"
RECEIVED_FROM = "RECEIVED_FROM"

USER_LINK_TYPES = [edge for _, edge in SHARED_ATTRIBUTE_EDGES.values()] + [
    SHARED_PAYMENT_METHOD
]
TRANSACTION_FLOW_TYPES = [SENT_TO, RECEIVED_FROM]
TRANSACTION_LINK_TYPES = [edge for _, edge in SHARED_SIGNAL_EDGES.values()]
EDGE_TYPES = USER_LINK_TYPES + TRANSACTION_FLOW_TYPES + TRANSACTION_LINK_TYPES

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


def camelize(properties: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Convert the snake_case keys of a graph property map to camelCase."""
    if not properties:
        return {}
    return {to_camel(key): value for key, value in properties.items()}


def _describe_validation_error(error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first["loc"])
    return f"Invalid value for {location}: {first['msg']}"


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class GraphModel(BaseModel):
    """Base model using camelCase on the wire and snake_case in the graph."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class UserInput(GraphModel):
    """Validated payload for creating or updating a user.

    Example:
    {
        "id": "user-001",
        "name": "Alice Johnson",
        "email": "alice.johnson@email.com",
        "phone": "+1-555-0101",
        "paymentMethods": ["visa-4532"],
        "metadata": {"riskLevel": "low"}
    }
    """

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    email: str
    phone: Optional[str] = None
    address: Optional[str] = None
    payment_methods: List[str] = Field(default_factory=list)
    metadata: Optional[Dict[str, Any]] = None

    @classmethod
    def from_payload(cls, payload: Any) -> "UserInput":
        if not isinstance(payload, dict):
            raise InvalidInputError("Request body must be a JSON object")

        if any(_is_blank(payload.get(field)) for field in ("id", "name", "email")):
            raise InvalidInputError("Missing required fields: id, name, email")

        if not isinstance(payload["email"], str) or not EMAIL_PATTERN.fullmatch(
            payload["email"]
        ):
            raise InvalidInputError("Invalid email format")

        # explicit nulls fall back to the defaults
        cleaned = {key: value for key, value in payload.items() if value is not None}

        try:
            return cls.model_validate(cleaned)
        except ValidationError as e:
            raise InvalidInputError(_describe_validation_error(e)) from e

    def distinct_payment_methods(self) -> List[str]:
        """Payment methods with blanks and repeats removed, order preserved."""
        return list(
            dict.fromkeys(method for method in self.payment_methods if not _is_blank(method))
        )


class TransactionInput(GraphModel):
    """Validated payload for creating or updating a transaction.

    Example:
    {
        "id": "txn-001",
        "fromUserId": "user-001",
        "toUserId": "user-002",
        "amount": 150.0,
        "ipAddress": "192.168.1.100",
        "deviceId": "device-alice-phone"
    }
    """

    id: str = Field(min_length=1)
    from_user_id: str = Field(min_length=1)
    to_user_id: str = Field(min_length=1)
    amount: float
    currency: str = "USD"
    type: str = "TRANSFER"
    status: str = "COMPLETED"
    description: str = ""
    ip_address: Optional[str] = None
    device_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    @classmethod
    def from_payload(cls, payload: Any) -> "TransactionInput":
        if not isinstance(payload, dict):
            raise InvalidInputError("Request body must be a JSON object")

        required = ("id", "fromUserId", "toUserId", "amount")
        if any(_is_blank(payload.get(field)) for field in required):
            raise InvalidInputError(
                "Missing required fields: id, fromUserId, toUserId, amount"
            )

        amount = payload["amount"]
        if (
            isinstance(amount, bool)
            or not isinstance(amount, (int, float))
            or not math.isfinite(amount)
        ):
            raise InvalidInputError("Amount must be a number")
        if amount <= 0:
            raise InvalidInputError("Amount must be positive")

        if payload["fromUserId"] == payload["toUserId"]:
            raise InvalidInputError("From user and to user cannot be the same")

        # explicit nulls fall back to the defaults
        cleaned = {key: value for key, value in payload.items() if value is not None}

        try:
            return cls.model_validate(cleaned)
        except ValidationError as e:
            raise InvalidInputError(_describe_validation_error(e)) from e


class User(GraphModel):
    """A user as stored in the graph."""

    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    payment_methods: List[str] = Field(default_factory=list)
    metadata: Optional[Dict[str, Any]] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @property
    def risk_level(self) -> Optional[str]:
        if self.metadata:
            return self.metadata.get("riskLevel")
        return None


class Transaction(GraphModel):
    """A transaction as stored in the graph, optionally with its participants."""

    id: str
    amount: Optional[float] = None
    currency: Optional[str] = None
    type: Optional[str] = None
    status: Optional[str] = None
    description: Optional[str] = None
    ip_address: Optional[str] = None
    device_id: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    timestamp: Optional[str] = None
    from_user_id: Optional[str] = None
    to_user_id: Optional[str] = None
