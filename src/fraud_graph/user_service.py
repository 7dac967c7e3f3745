import logging
from typing import Any, Dict, List, Optional

from .database import GraphDatabase
from .exceptions import GraphQueryError
from .models import (
    RECEIVED_FROM,
    SENT_TO,
    SHARED_ATTRIBUTE_EDGES,
    SHARED_PAYMENT_METHOD,
    UserInput,
    User,
    Transaction,
    camelize,
)
from .utils import utc_now_iso

logger = logging.getLogger("fraud_graph")

UPSERT_USER_QUERY = """
    MERGE (u:"User" {id: %(id)s})
    ON CREATE SET u.created_at = %(now)s
    ON MATCH SET u.updated_at = %(now)s
    SET u.name = %(name)s,
        u.email = %(email)s,
        u.phone = %(phone)s,
        u.address = %(address)s,
        u.payment_methods = %(payment_methods)s,
        u.metadata = %(metadata)s
    RETURN properties(u) AS props
"""

LINK_SHARED_ATTRIBUTE_QUERY = """
    MATCH (u:"User" {{id: %(id)s}}), (other:"User")
    WHERE other.{prop} = %(value)s AND other.id <> u.id
    MERGE (u)-[r:"{edge_type}" {{attribute: %(attribute)s, value: %(value)s}}]-(other)
    ON CREATE SET r.created_at = %(now)s
"""

LINK_SHARED_PAYMENT_METHOD_QUERY = f"""
    MATCH (u:"User" {{id: %(id)s}}), (other:"User")
    WHERE %(value)s <@ other.payment_methods AND other.id <> u.id
    MERGE (u)-[r:"{SHARED_PAYMENT_METHOD}" {{attribute: %(attribute)s, value: %(value)s}}]-(other)
    ON CREATE SET r.created_at = %(now)s
"""

LIST_USERS_QUERY = """
    MATCH (u:"User")
    RETURN properties(u) AS props, u.created_at AS created_at
    ORDER BY created_at DESC
"""

GET_USER_QUERY = """
    MATCH (u:"User" {id: %(id)s})
    RETURN properties(u) AS props
"""

USER_EXISTS_QUERY = """
    MATCH (u:"User" {id: %(id)s})
    RETURN count(u) AS count
"""

USER_LINKS_QUERY = """
    MATCH (u:"User" {id: %(id)s})-[r]-(related:"User")
    RETURN label(r) AS type, properties(r) AS relationship, properties(related) AS related_user
"""

USER_TRANSACTIONS_QUERY = """
    MATCH (u:"User" {id: %(id)s})-[r]-(t:"Transaction")
    OPTIONAL MATCH (t)-[]-(other:"User")
    WHERE other.id <> u.id
    RETURN label(r) AS type,
           properties(r) AS relationship,
           properties(t) AS transaction,
           properties(other) AS other_user
"""


def _relationship(edge_type: str, properties: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    return {"type": edge_type, "properties": camelize(properties)}


class UserService:
    """Writes users, links users sharing identifying attributes, and reads user neighborhoods."""

    def __init__(self, database: GraphDatabase):
        self.database = database

    async def upsert_user(self, user: UserInput) -> User:
        """
        Create or update a user, then link it to every other user sharing an attribute.

        Links are only ever added; a user whose attribute changes keeps its old links.
        """
        logger.info(f"Upserting user {user.id}")
        now = utc_now_iso()

        records = await self.database.run_query(
            UPSERT_USER_QUERY,
            {
                "id": user.id,
                "now": now,
                "name": user.name,
                "email": user.email,
                "phone": user.phone,
                "address": user.address,
                "payment_methods": user.payment_methods,
                "metadata": user.metadata,
            },
        )

        await self.detect_shared_attributes(user, now)

        return User.model_validate(records[0]["props"])

    async def detect_shared_attributes(self, user: UserInput, now: str) -> None:
        """Merge one SHARED_* edge per (other user, attribute, value) match."""
        for attribute, (prop, edge_type) in SHARED_ATTRIBUTE_EDGES.items():
            value = getattr(user, prop)
            if not value:
                continue
            await self._link(
                LINK_SHARED_ATTRIBUTE_QUERY.format(prop=prop, edge_type=edge_type),
                user.id,
                attribute,
                value,
                now,
            )

        for method in user.distinct_payment_methods():
            await self._link(
                LINK_SHARED_PAYMENT_METHOD_QUERY, user.id, "paymentMethod", method, now
            )

    async def _link(
        self, query: str, user_id: str, attribute: str, value: str, now: str
    ) -> None:
        try:
            await self.database.run_query(
                query,
                {"id": user_id, "attribute": attribute, "value": value, "now": now},
            )
        except GraphQueryError as e:
            # TODO: report partial link failures to the caller; the user write has already committed
            logger.error(
                f"Error linking shared {attribute} for user {user_id}: {e.get_details()}"
            )

    async def list_users(self) -> List[User]:
        records = await self.database.run_query(LIST_USERS_QUERY)
        return [User.model_validate(record["props"]) for record in records]

    async def get_user(self, user_id: str) -> Optional[User]:
        records = await self.database.run_query(GET_USER_QUERY, {"id": user_id})
        if not records:
            return None
        return User.model_validate(records[0]["props"])

    async def user_exists(self, user_id: str) -> bool:
        records = await self.database.run_query(USER_EXISTS_QUERY, {"id": user_id})
        return bool(records) and records[0]["count"] > 0

    async def get_user_relationships(self, user_id: str) -> Optional[Dict[str, Any]]:
        """
        Return a user with its shared-attribute links and the transactions it took part in.

        Returns None when the user does not exist.
        """
        logger.info(f"Loading relationships for user {user_id}")
        user = await self.get_user(user_id)
        if user is None:
            return None

        link_records = await self.database.run_query(USER_LINKS_QUERY, {"id": user_id})
        direct_relationships = []
        seen_links = set()
        for record in link_records:
            properties = record["relationship"] or {}
            related = record["related_user"]
            key = (record["type"], related["id"], properties.get("value"))
            if key in seen_links:
                continue
            seen_links.add(key)
            direct_relationships.append(
                {
                    "type": record["type"],
                    "relatedUser": User.model_validate(related).to_json(),
                    "relationship": _relationship(record["type"], properties),
                }
            )

        transaction_records = await self.database.run_query(
            USER_TRANSACTIONS_QUERY, {"id": user_id}
        )
        transactions = []
        seen_transactions = set()
        for record in transaction_records:
            if record["type"] not in (SENT_TO, RECEIVED_FROM):
                continue
            transaction = record["transaction"]
            if transaction["id"] in seen_transactions:
                continue
            seen_transactions.add(transaction["id"])
            other_user = record["other_user"]
            transactions.append(
                {
                    "transaction": Transaction.model_validate(transaction).to_json(),
                    "direction": "outgoing" if record["type"] == SENT_TO else "incoming",
                    "relationship": _relationship(record["type"], record["relationship"]),
                    "otherUser": User.model_validate(other_user).to_json()
                    if other_user
                    else None,
                }
            )

        return {
            "user": user.to_json(),
            "directRelationships": direct_relationships,
            "transactions": transactions,
        }
