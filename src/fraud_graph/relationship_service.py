import logging
from typing import Any, Dict, List

from .database import GraphDatabase
from .models import (
    TRANSACTION_FLOW_TYPES,
    TRANSACTION_LINK_TYPES,
    USER_LINK_TYPES,
    User,
    camelize,
)

logger = logging.getLogger("fraud_graph")

MAX_PATH_LENGTH = 5
HIGH_RISK_SHARED_THRESHOLD = 2
HIGH_RISK_TRANSACTION_THRESHOLD = 5
HIGH_RISK_LIMIT = 10

COUNT_USERS_QUERY = """
    MATCH (u:"User")
    RETURN count(u) AS count
"""

COUNT_TRANSACTIONS_QUERY = """
    MATCH (t:"Transaction")
    RETURN count(t) AS count
"""

# directed match so every edge is counted once
EDGE_TYPE_COUNTS_QUERY = """
    MATCH ()-[r]->()
    RETURN label(r) AS type, count(r) AS count
"""

SHARED_ATTRIBUTE_COUNTS_QUERY = """
    MATCH (:"User")-[r]->(:"User")
    RETURN label(r) AS type, count(r) AS count
    ORDER BY count DESC
"""

TRANSACTION_PATTERN_COUNTS_QUERY = """
    MATCH (:"Transaction")-[r]->(:"Transaction")
    RETURN label(r) AS type, count(r) AS count
    ORDER BY count DESC
"""

HIGH_RISK_USERS_QUERY = f"""
    MATCH (u:"User")
    OPTIONAL MATCH (u)-[]-(related:"User")
    WITH u, count(DISTINCT related) AS shared_connections
    OPTIONAL MATCH (u)-[]-(t:"Transaction")
    WITH u, shared_connections, count(DISTINCT t) AS transaction_count
    WHERE shared_connections > {HIGH_RISK_SHARED_THRESHOLD}
       OR transaction_count > {HIGH_RISK_TRANSACTION_THRESHOLD}
    RETURN properties(u) AS props,
           shared_connections,
           transaction_count,
           shared_connections * 2 + transaction_count AS risk_score
    ORDER BY risk_score DESC
    LIMIT {HIGH_RISK_LIMIT}
"""

CONNECTION_PATH_QUERY = f"""
    MATCH p = shortestpath((a:"User" {{id: %(from_id)s}})-[*1..{MAX_PATH_LENGTH}]-(b:"User" {{id: %(to_id)s}}))
    UNWIND relationships(p) AS rel
    RETURN label(rel) AS type,
           properties(rel) AS properties,
           label(startNode(rel)) AS start_label,
           properties(startNode(rel)) AS start_node,
           label(endNode(rel)) AS end_label,
           properties(endNode(rel)) AS end_node
"""


def _node_summary(label: str, properties: Dict[str, Any]) -> Dict[str, Any]:
    return {"label": label, **camelize(properties)}


def _order_path(hops: List[Dict[str, Any]], from_id: str) -> Dict[str, Any]:
    """
    Walk the unordered hop list from the start user and return nodes and
    relationships in path order. Each hop keeps its stored direction.
    """
    nodes = []
    relationships = []
    current = from_id
    remaining = list(hops)

    while remaining:
        for index, hop in enumerate(remaining):
            start, end = hop["start_node"], hop["end_node"]
            if start.get("id") == current:
                origin, origin_label, target, target_label = (
                    start, hop["start_label"], end, hop["end_label"],
                )
            elif end.get("id") == current:
                origin, origin_label, target, target_label = (
                    end, hop["end_label"], start, hop["start_label"],
                )
            else:
                continue

            if not nodes:
                nodes.append(_node_summary(origin_label, origin))
            nodes.append(_node_summary(target_label, target))
            relationships.append(
                {
                    "type": hop["type"],
                    "from": start.get("id"),
                    "to": end.get("id"),
                    "properties": camelize(hop["properties"]),
                }
            )
            current = target.get("id")
            remaining.pop(index)
            break
        else:
            # hops that do not chain from the current node are left out
            logger.warning(f"Could not order {len(remaining)} path hops from {from_id}")
            break

    return {"nodes": nodes, "relationships": relationships}


class RelationshipService:
    """Graph-wide aggregates: overview counts, pattern breakdowns, risk scoring and paths."""

    def __init__(self, database: GraphDatabase):
        self.database = database

    async def _count(self, query: str) -> int:
        records = await self.database.run_query(query)
        return records[0]["count"] if records else 0

    async def network_overview(self) -> Dict[str, Any]:
        users = await self._count(COUNT_USERS_QUERY)
        transactions = await self._count(COUNT_TRANSACTIONS_QUERY)
        records = await self.database.run_query(EDGE_TYPE_COUNTS_QUERY)

        breakdown = {record["type"]: record["count"] for record in records}

        return {
            "users": users,
            "transactions": transactions,
            "sharedAttributeRelationships": sum(
                breakdown.get(edge_type, 0) for edge_type in USER_LINK_TYPES
            ),
            "transactionRelationships": sum(
                breakdown.get(edge_type, 0) for edge_type in TRANSACTION_FLOW_TYPES
            ),
            "transactionLinkRelationships": sum(
                breakdown.get(edge_type, 0) for edge_type in TRANSACTION_LINK_TYPES
            ),
            "totalRelationships": sum(breakdown.values()),
            "relationshipBreakdown": breakdown,
        }

    async def shared_attribute_stats(self) -> List[Dict[str, Any]]:
        records = await self.database.run_query(SHARED_ATTRIBUTE_COUNTS_QUERY)
        return [{"type": record["type"], "count": record["count"]} for record in records]

    async def transaction_pattern_stats(self) -> List[Dict[str, Any]]:
        records = await self.database.run_query(TRANSACTION_PATTERN_COUNTS_QUERY)
        return [{"type": record["type"], "count": record["count"]} for record in records]

    async def high_risk_users(self) -> List[Dict[str, Any]]:
        """
        Users with more than two linked users or more than five transactions,
        scored as 2 * sharedConnections + transactionCount, top ten first.
        """
        records = await self.database.run_query(HIGH_RISK_USERS_QUERY)
        return [
            {
                "user": User.model_validate(record["props"]).to_json(),
                "sharedConnections": record["shared_connections"],
                "transactionCount": record["transaction_count"],
                "riskScore": record["risk_score"],
            }
            for record in records
        ]

    async def connection_path(self, from_id: str, to_id: str) -> Dict[str, Any]:
        """Shortest path of up to five hops of any edge type between two users."""
        logger.info(f"Finding connection path from {from_id} to {to_id}")
        hops = await self.database.run_query(
            CONNECTION_PATH_QUERY, {"from_id": from_id, "to_id": to_id}
        )
        if not hops:
            return {
                "connected": False,
                "message": "No connection path found between users",
            }

        path = _order_path(hops, from_id)
        return {
            "connected": True,
            "pathLength": len(path["relationships"]),
            "nodes": path["nodes"],
            "relationships": path["relationships"],
        }
