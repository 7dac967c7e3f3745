"""
Build Cytoscape-style element lists from user and transaction neighborhoods.

Each element is ``{"group": "nodes" | "edges", "data": {...}}``. Node ids are the
user or transaction ids; duplicate nodes and edges are dropped so the list can be
handed straight to a graph renderer.
"""

from typing import Any, Dict, List, Optional


def _format_amount(amount: Optional[float]) -> str:
    if amount is None:
        return "$?"
    return f"${amount:,.2f}"


def _attribute_type(edge_type: str) -> str:
    return edge_type.removeprefix("SHARED_")


class ElementCollector:
    """Accumulates nodes and edges, keeping the first occurrence of each id."""

    def __init__(self):
        self._nodes: Dict[str, Dict[str, Any]] = {}
        self._edges: Dict[str, Dict[str, Any]] = {}

    def add_user(self, user: Optional[Dict[str, Any]]) -> None:
        if not user or user["id"] in self._nodes:
            return
        metadata = user.get("metadata") or {}
        self._nodes[user["id"]] = {
            "group": "nodes",
            "data": {
                "id": user["id"],
                "label": user.get("name") or user["id"],
                "type": "user",
                "email": user.get("email"),
                "phone": user.get("phone"),
                "address": user.get("address"),
                "riskLevel": metadata.get("riskLevel"),
            },
        }

    def add_transaction(self, transaction: Dict[str, Any]) -> None:
        if transaction["id"] in self._nodes:
            return
        self._nodes[transaction["id"]] = {
            "group": "nodes",
            "data": {
                "id": transaction["id"],
                "label": _format_amount(transaction.get("amount")),
                "type": "transaction",
                "amount": transaction.get("amount"),
                "description": transaction.get("description"),
                "ipAddress": transaction.get("ipAddress"),
                "deviceId": transaction.get("deviceId"),
            },
        }

    def add_edge(self, edge_id: str, source: str, target: str, **data: Any) -> None:
        if edge_id in self._edges:
            return
        self._edges[edge_id] = {
            "group": "edges",
            "data": {"id": edge_id, "source": source, "target": target, **data},
        }

    def add_shared_link(
        self, source: str, target: str, edge_type: str, properties: Dict[str, Any]
    ) -> None:
        attribute_type = _attribute_type(edge_type)
        value = properties.get("value")
        # one visual edge per pair and attribute regardless of which side was queried
        first, second = sorted((source, target))
        self.add_edge(
            f"shared-{first}-{second}-{attribute_type}",
            source,
            target,
            label=f"{attribute_type}: {value}",
            type="shared",
            attributeType=attribute_type,
            value=value,
        )

    def add_money_flow(
        self,
        transaction: Dict[str, Any],
        sender_id: Optional[str],
        receiver_id: Optional[str],
    ) -> None:
        amount = _format_amount(transaction.get("amount"))
        if sender_id:
            self.add_edge(
                f"sent-{sender_id}-{transaction['id']}",
                sender_id,
                transaction["id"],
                label=f"Sent {amount}",
                type="transaction",
            )
        if receiver_id:
            self.add_edge(
                f"received-{transaction['id']}-{receiver_id}",
                transaction["id"],
                receiver_id,
                label=f"Received {amount}",
                type="transaction",
            )

    def elements(self) -> List[Dict[str, Any]]:
        return list(self._nodes.values()) + list(self._edges.values())


def user_network_elements(neighborhood: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Elements for a user, the users linked to it, and its transactions."""
    collector = ElementCollector()
    user = neighborhood["user"]
    collector.add_user(user)

    for link in neighborhood["directRelationships"]:
        related = link["relatedUser"]
        collector.add_user(related)
        collector.add_shared_link(
            user["id"], related["id"], link["type"], link["relationship"]["properties"]
        )

    for entry in neighborhood["transactions"]:
        transaction = entry["transaction"]
        other = entry.get("otherUser")
        other_id = other["id"] if other else None
        collector.add_transaction(transaction)
        collector.add_user(other)
        if entry["direction"] == "outgoing":
            collector.add_money_flow(transaction, user["id"], other_id)
        else:
            collector.add_money_flow(transaction, other_id, user["id"])

    return collector.elements()


def transaction_network_elements(neighborhood: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Elements for a transaction, its participants, and transactions sharing a signal with it."""
    collector = ElementCollector()
    transaction = neighborhood["transaction"]
    from_user = neighborhood.get("fromUser")
    to_user = neighborhood.get("toUser")

    collector.add_transaction(transaction)
    collector.add_user(from_user)
    collector.add_user(to_user)
    collector.add_money_flow(
        transaction,
        from_user["id"] if from_user else None,
        to_user["id"] if to_user else None,
    )

    for related in neighborhood["relatedTransactions"]:
        other = related["transaction"]
        related_from = related.get("fromUser")
        related_to = related.get("toUser")
        collector.add_transaction(other)
        collector.add_user(related_from)
        collector.add_user(related_to)
        collector.add_money_flow(
            other,
            related_from["id"] if related_from else None,
            related_to["id"] if related_to else None,
        )
        collector.add_shared_link(
            transaction["id"],
            other["id"],
            related["relationship"]["type"],
            related["relationship"]["properties"],
        )

    return collector.elements()
