import logging
from typing import Any, Dict, List, Optional

from .database import GraphDatabase
from .exceptions import GraphQueryError, UserNotFoundError
from .models import (
    SENT_TO,
    SHARED_SIGNAL_EDGES,
    Transaction,
    TransactionInput,
    User,
    camelize,
)
from .user_service import UserService
from .utils import utc_now_iso

logger = logging.getLogger("fraud_graph")

UPSERT_TRANSACTION_QUERY = """
    MATCH (sender:"User" {id: %(from_user_id)s}), (receiver:"User" {id: %(to_user_id)s})
    MERGE (t:"Transaction" {id: %(id)s})
    ON CREATE SET t.created_at = %(now)s, t.timestamp = %(now)s
    ON MATCH SET t.updated_at = %(now)s
    SET t.amount = %(amount)s,
        t.currency = %(currency)s,
        t.type = %(type)s,
        t.status = %(status)s,
        t.description = %(description)s,
        t.ip_address = %(ip_address)s,
        t.device_id = %(device_id)s,
        t.metadata = %(metadata)s
    MERGE (sender)-[s:"SENT_TO"]->(t)
    SET s.amount = t.amount, s.currency = t.currency, s.timestamp = t.timestamp
    MERGE (t)-[r:"RECEIVED_FROM"]->(receiver)
    SET r.amount = t.amount, r.currency = t.currency, r.timestamp = t.timestamp
    RETURN properties(t) AS transaction
"""

LINK_SHARED_SIGNAL_QUERY = """
    MATCH (t:"Transaction" {{id: %(id)s}}), (other:"Transaction")
    WHERE other.{prop} = %(value)s AND other.id <> t.id
    MERGE (t)-[r:"{edge_type}" {{attribute: %(attribute)s, value: %(value)s}}]-(other)
    ON CREATE SET r.created_at = %(now)s
"""

TRANSACTION_WITH_PARTICIPANTS = """
    OPTIONAL MATCH (sender:"User")-[:"SENT_TO"]->(t)
    OPTIONAL MATCH (t)-[:"RECEIVED_FROM"]->(receiver:"User")
"""

LIST_TRANSACTIONS_QUERY = f"""
    MATCH (t:"Transaction")
    {TRANSACTION_WITH_PARTICIPANTS}
    RETURN properties(t) AS transaction,
           sender.id AS from_user_id,
           receiver.id AS to_user_id,
           t.timestamp AS sort_key
    ORDER BY sort_key DESC
"""

GET_TRANSACTION_QUERY = f"""
    MATCH (t:"Transaction" {{id: %(id)s}})
    {TRANSACTION_WITH_PARTICIPANTS}
    RETURN properties(t) AS transaction,
           properties(sender) AS from_user,
           properties(receiver) AS to_user
"""

TRANSACTIONS_BY_USER_QUERY = """
    MATCH (u:"User" {id: %(id)s})-[r]-(t:"Transaction")
    OPTIONAL MATCH (t)-[]-(other:"User")
    WHERE other.id <> u.id
    RETURN properties(t) AS transaction,
           label(r) AS relationship_type,
           properties(other) AS other_user,
           t.timestamp AS sort_key
    ORDER BY sort_key DESC
"""

RELATED_TRANSACTIONS_QUERY = f"""
    MATCH (source:"Transaction" {{id: %(id)s}})-[rel]-(t:"Transaction")
    {TRANSACTION_WITH_PARTICIPANTS}
    RETURN properties(t) AS transaction,
           label(rel) AS type,
           properties(rel) AS relationship,
           properties(sender) AS from_user,
           properties(receiver) AS to_user
"""


def _user_json(properties: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    if not properties:
        return None
    return User.model_validate(properties).to_json()


def _transaction_from_record(
    record: Dict[str, Any], from_user_id: Optional[str], to_user_id: Optional[str]
) -> Transaction:
    transaction = Transaction.model_validate(record["transaction"])
    transaction.from_user_id = from_user_id
    transaction.to_user_id = to_user_id
    return transaction


class TransactionService:
    """Writes transactions with their money-flow edges, links shared signals, and reads neighborhoods."""

    def __init__(self, database: GraphDatabase, users: UserService):
        self.database = database
        self.users = users

    async def upsert_transaction(self, transaction: TransactionInput) -> Transaction:
        """
        Create or update a transaction between two existing users.

        Raises UserNotFoundError without writing anything when either participant
        is missing. Shared IP and device links are merged after the write and are
        never removed when a signal changes.
        """
        logger.info(
            f"Upserting transaction {transaction.id} from {transaction.from_user_id} to {transaction.to_user_id}"
        )

        if not await self.users.user_exists(transaction.from_user_id):
            raise UserNotFoundError("From", transaction.from_user_id)
        if not await self.users.user_exists(transaction.to_user_id):
            raise UserNotFoundError("To", transaction.to_user_id)

        now = utc_now_iso()
        records = await self.database.run_query(
            UPSERT_TRANSACTION_QUERY,
            {
                "id": transaction.id,
                "from_user_id": transaction.from_user_id,
                "to_user_id": transaction.to_user_id,
                "now": now,
                "amount": transaction.amount,
                "currency": transaction.currency,
                "type": transaction.type,
                "status": transaction.status,
                "description": transaction.description,
                "ip_address": transaction.ip_address,
                "device_id": transaction.device_id,
                "metadata": transaction.metadata,
            },
        )
        if not records:
            # a participant was deleted between the existence check and the write
            raise GraphQueryError(
                f"Transaction {transaction.id} was not written: participants no longer match"
            )

        await self.detect_shared_signals(transaction, now)

        return _transaction_from_record(
            records[0], transaction.from_user_id, transaction.to_user_id
        )

    async def detect_shared_signals(self, transaction: TransactionInput, now: str) -> None:
        """Merge one SHARED_IP / SHARED_DEVICE edge per matching transaction."""
        for attribute, (prop, edge_type) in SHARED_SIGNAL_EDGES.items():
            value = getattr(transaction, prop)
            if not value:
                continue
            try:
                await self.database.run_query(
                    LINK_SHARED_SIGNAL_QUERY.format(prop=prop, edge_type=edge_type),
                    {
                        "id": transaction.id,
                        "attribute": attribute,
                        "value": value,
                        "now": now,
                    },
                )
            except GraphQueryError as e:
                # TODO: report partial link failures to the caller; the transaction write has already committed
                logger.error(
                    f"Error linking shared {attribute} for transaction {transaction.id}: {e.get_details()}"
                )

    async def list_transactions(self) -> List[Transaction]:
        records = await self.database.run_query(LIST_TRANSACTIONS_QUERY)
        return [
            _transaction_from_record(record, record["from_user_id"], record["to_user_id"])
            for record in records
        ]

    async def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        records = await self.database.run_query(GET_TRANSACTION_QUERY, {"id": transaction_id})
        if not records:
            return None
        record = records[0]
        return _transaction_from_record(
            record,
            (record["from_user"] or {}).get("id"),
            (record["to_user"] or {}).get("id"),
        )

    async def get_transactions_by_user(self, user_id: str) -> List[Dict[str, Any]]:
        """Transactions a user sent or received, newest first, with the counterparty."""
        records = await self.database.run_query(TRANSACTIONS_BY_USER_QUERY, {"id": user_id})
        results = []
        seen = set()
        for record in records:
            transaction = Transaction.model_validate(record["transaction"])
            if transaction.id in seen:
                continue
            seen.add(transaction.id)
            other_user = _user_json(record["other_user"])
            if record["relationship_type"] == SENT_TO:
                transaction.from_user_id = user_id
                transaction.to_user_id = other_user["id"] if other_user else None
            else:
                transaction.from_user_id = other_user["id"] if other_user else None
                transaction.to_user_id = user_id
            results.append(
                {
                    **transaction.to_json(),
                    "relationshipType": record["relationship_type"],
                    "otherUser": other_user,
                }
            )
        return results

    async def get_transaction_relationships(
        self, transaction_id: str
    ) -> Optional[Dict[str, Any]]:
        """
        Return a transaction with both participants and every transaction linked to it
        by a shared IP address or device.

        Returns None when the transaction does not exist.
        """
        logger.info(f"Loading relationships for transaction {transaction_id}")
        records = await self.database.run_query(GET_TRANSACTION_QUERY, {"id": transaction_id})
        if not records:
            return None
        record = records[0]
        from_user = _user_json(record["from_user"])
        to_user = _user_json(record["to_user"])
        transaction = _transaction_from_record(
            record,
            from_user["id"] if from_user else None,
            to_user["id"] if to_user else None,
        )

        related_records = await self.database.run_query(
            RELATED_TRANSACTIONS_QUERY, {"id": transaction_id}
        )
        related_transactions = []
        seen = set()
        for related in related_records:
            related_from = _user_json(related["from_user"])
            related_to = _user_json(related["to_user"])
            related_transaction = _transaction_from_record(
                related,
                related_from["id"] if related_from else None,
                related_to["id"] if related_to else None,
            )
            properties = related["relationship"] or {}
            key = (related["type"], related_transaction.id, properties.get("value"))
            if key in seen:
                continue
            seen.add(key)
            related_transactions.append(
                {
                    "transaction": related_transaction.to_json(),
                    "relationship": {
                        "type": related["type"],
                        "properties": camelize(properties),
                    },
                    "fromUser": related_from,
                    "toUser": related_to,
                }
            )

        return {
            "transaction": transaction.to_json(),
            "fromUser": from_user,
            "toUser": to_user,
            "relatedTransactions": related_transactions,
        }
