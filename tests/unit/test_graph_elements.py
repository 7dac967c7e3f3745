from fraud_graph.graph_elements import (
    transaction_network_elements,
    user_network_elements,
)

ALICE = {
    "id": "user-001",
    "name": "Alice Johnson",
    "email": "alice.johnson@email.com",
    "phone": "+1-555-0101",
    "address": "123 Main St",
    "metadata": {"riskLevel": "low"},
}
FRANK = {"id": "user-006", "name": "Frank Miller", "email": "alice.johnson@email.com", "metadata": None}
BOB = {"id": "user-002", "name": "Bob Smith", "email": "bob.smith@email.com"}
CAROL = {"id": "user-003", "name": "Carol Davis", "email": "carol.davis@email.com"}


def _by_id(elements):
    return {element["data"]["id"]: element for element in elements}


def test_user_network_elements():
    neighborhood = {
        "user": ALICE,
        "directRelationships": [
            {
                "type": "SHARED_EMAIL",
                "relatedUser": FRANK,
                "relationship": {
                    "type": "SHARED_EMAIL",
                    "properties": {"attribute": "email", "value": "alice.johnson@email.com"},
                },
            }
        ],
        "transactions": [
            {
                "transaction": {"id": "txn-001", "amount": 150.0, "ipAddress": "192.168.1.100"},
                "direction": "outgoing",
                "relationship": {"type": "SENT_TO", "properties": {}},
                "otherUser": BOB,
            },
            {
                "transaction": {"id": "txn-002", "amount": 75.5},
                "direction": "incoming",
                "relationship": {"type": "RECEIVED_FROM", "properties": {}},
                "otherUser": CAROL,
            },
        ],
    }

    elements = _by_id(user_network_elements(neighborhood))

    alice = elements["user-001"]
    assert alice["group"] == "nodes"
    assert alice["data"]["type"] == "user"
    assert alice["data"]["label"] == "Alice Johnson"
    assert alice["data"]["riskLevel"] == "low"
    assert elements["user-006"]["data"]["riskLevel"] is None

    shared = elements["shared-user-001-user-006-EMAIL"]
    assert shared["group"] == "edges"
    assert shared["data"]["source"] == "user-001"
    assert shared["data"]["target"] == "user-006"
    assert shared["data"]["label"] == "EMAIL: alice.johnson@email.com"
    assert shared["data"]["type"] == "shared"

    txn = elements["txn-001"]
    assert txn["data"]["type"] == "transaction"
    assert txn["data"]["label"] == "$150.00"
    assert txn["data"]["ipAddress"] == "192.168.1.100"

    assert elements["sent-user-001-txn-001"]["data"]["label"] == "Sent $150.00"
    assert elements["received-txn-001-user-002"]["data"]["target"] == "user-002"
    # incoming transaction flows from the counterparty
    assert elements["sent-user-003-txn-002"]["data"]["source"] == "user-003"
    assert elements["received-txn-002-user-001"]["data"]["label"] == "Received $75.50"


def test_transaction_network_elements_deduplicates_nodes():
    neighborhood = {
        "transaction": {"id": "txn-001", "amount": 150.0},
        "fromUser": ALICE,
        "toUser": BOB,
        "relatedTransactions": [
            {
                "transaction": {"id": "txn-002", "amount": 75.5},
                "relationship": {
                    "type": "SHARED_IP",
                    "properties": {"attribute": "ipAddress", "value": "192.168.1.100"},
                },
                "fromUser": CAROL,
                "toUser": ALICE,
            }
        ],
    }

    elements = transaction_network_elements(neighborhood)
    by_id = _by_id(elements)

    node_ids = [e["data"]["id"] for e in elements if e["group"] == "nodes"]
    assert sorted(node_ids) == ["txn-001", "txn-002", "user-001", "user-002", "user-003"]

    link = by_id["shared-txn-001-txn-002-IP"]
    assert link["data"]["label"] == "IP: 192.168.1.100"
    assert link["data"]["attributeType"] == "IP"
    assert "sent-user-003-txn-002" in by_id
    assert "received-txn-002-user-001" in by_id


def test_missing_counterparty_is_skipped():
    neighborhood = {
        "transaction": {"id": "txn-009", "amount": None},
        "fromUser": None,
        "toUser": BOB,
        "relatedTransactions": [],
    }

    elements = _by_id(transaction_network_elements(neighborhood))

    assert elements["txn-009"]["data"]["label"] == "$?"
    assert "received-txn-009-user-002" in elements
    assert not any(key.startswith("sent-") for key in elements)
