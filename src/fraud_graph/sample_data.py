"""Demo dataset with deliberately shared attributes and signals, and its loader."""

import logging
from typing import Any, Dict, List

from .database import GraphDatabase
from .models import TransactionInput, UserInput
from .relationship_service import RelationshipService
from .transaction_service import TransactionService
from .user_service import UserService

logger = logging.getLogger("fraud_graph")

SAMPLE_USERS: List[Dict[str, Any]] = [
    {
        "id": "user-001",
        "name": "Alice Johnson",
        "email": "alice.johnson@email.com",
        "phone": "+1-555-0101",
        "address": "123 Main St, New York, NY 10001",
        "paymentMethods": ["visa-4532", "paypal-alice"],
        "metadata": {"riskLevel": "low", "accountAge": 365},
    },
    {
        "id": "user-002",
        "name": "Bob Smith",
        "email": "bob.smith@email.com",
        "phone": "+1-555-0102",
        "address": "456 Oak Ave, New York, NY 10002",
        "paymentMethods": ["mastercard-5555", "bank-account-001"],
        "metadata": {"riskLevel": "medium", "accountAge": 180},
    },
    {
        "id": "user-003",
        "name": "Carol Davis",
        "email": "carol.davis@email.com",
        "phone": "+1-555-0101",  # Alice's phone
        "address": "789 Pine Rd, Boston, MA 02101",
        "paymentMethods": ["visa-4532", "apple-pay-carol"],  # Alice's card
        "metadata": {"riskLevel": "high", "accountAge": 90},
    },
    {
        "id": "user-004",
        "name": "David Wilson",
        "email": "david.wilson@email.com",
        "phone": "+1-555-0104",
        "address": "123 Main St, New York, NY 10001",  # Alice's address
        "paymentMethods": ["amex-3782", "crypto-wallet-001"],
        "metadata": {"riskLevel": "low", "accountAge": 730},
    },
    {
        "id": "user-005",
        "name": "Eva Brown",
        "email": "eva.brown@email.com",
        "phone": "+1-555-0105",
        "address": "321 Elm St, Chicago, IL 60601",
        "paymentMethods": ["mastercard-5555", "venmo-eva"],  # Bob's card
        "metadata": {"riskLevel": "medium", "accountAge": 270},
    },
    {
        "id": "user-006",
        "name": "Frank Miller",
        "email": "alice.johnson@email.com",  # Alice's email
        "phone": "+1-555-0106",
        "address": "654 Cedar Blvd, Miami, FL 33101",
        "paymentMethods": ["discover-6011", "cash-app-frank"],
        "metadata": {"riskLevel": "high", "accountAge": 30},
    },
    {
        "id": "user-007",
        "name": "Grace Taylor",
        "email": "grace.taylor@email.com",
        "phone": "+1-555-0107",
        "address": "987 Maple Dr, Seattle, WA 98101",
        "paymentMethods": ["visa-4111", "google-pay-grace"],
        "metadata": {"riskLevel": "low", "accountAge": 540},
    },
    {
        "id": "user-008",
        "name": "Henry Anderson",
        "email": "henry.anderson@email.com",
        "phone": "+1-555-0102",  # Bob's phone
        "address": "147 Birch Ln, Denver, CO 80201",
        "paymentMethods": ["mastercard-2222", "zelle-henry"],
        "metadata": {"riskLevel": "medium", "accountAge": 420},
    },
    {
        "id": "user-009",
        "name": "Ivy Chen",
        "email": "ivy.chen@email.com",
        "phone": "+1-555-0109",
        "address": "789 Pine Rd, Boston, MA 02101",  # Carol's address
        "paymentMethods": ["visa-4000", "paypal-ivy"],
        "metadata": {"riskLevel": "low", "accountAge": 200},
    },
    {
        "id": "user-010",
        "name": "Jack Robinson",
        "email": "jack.robinson@email.com",
        "phone": "+1-555-0110",
        "address": "258 Spruce St, Austin, TX 78701",
        "paymentMethods": ["amex-3456", "bitcoin-wallet-jack"],
        "metadata": {"riskLevel": "high", "accountAge": 60},
    },
]

SAMPLE_TRANSACTIONS: List[Dict[str, Any]] = [
    {
        "id": "txn-001",
        "fromUserId": "user-001",
        "toUserId": "user-002",
        "amount": 150.00,
        "description": "Payment for dinner",
        "ipAddress": "192.168.1.100",
        "deviceId": "device-alice-phone",
        "metadata": {"category": "personal", "merchant": None},
    },
    {
        "id": "txn-002",
        "fromUserId": "user-003",
        "toUserId": "user-001",
        "amount": 75.50,
        "description": "Shared taxi fare",
        "ipAddress": "192.168.1.100",
        "deviceId": "device-carol-laptop",
        "metadata": {"category": "transportation", "merchant": "TaxiCorp"},
    },
    {
        "id": "txn-003",
        "fromUserId": "user-004",
        "toUserId": "user-005",
        "amount": 500.00,
        "description": "Rent payment",
        "ipAddress": "10.0.0.50",
        "deviceId": "device-david-desktop",
        "metadata": {"category": "housing", "recurring": True},
    },
    {
        "id": "txn-004",
        "fromUserId": "user-006",
        "toUserId": "user-007",
        "amount": 25.00,
        "description": "Coffee money",
        "ipAddress": "192.168.1.100",
        "deviceId": "device-frank-mobile",
        "metadata": {"category": "food", "merchant": "CoffeeShop"},
    },
    {
        "id": "txn-005",
        "fromUserId": "user-002",
        "toUserId": "user-008",
        "amount": 300.00,
        "description": "Loan repayment",
        "ipAddress": "172.16.0.10",
        "deviceId": "device-bob-tablet",
        "metadata": {"category": "loan", "installment": 1},
    },
    {
        "id": "txn-006",
        "fromUserId": "user-009",
        "toUserId": "user-010",
        "amount": 120.00,
        "description": "Book purchase",
        "ipAddress": "203.0.113.15",
        "deviceId": "device-ivy-phone",
        "metadata": {"category": "education", "merchant": "BookStore"},
    },
    {
        "id": "txn-007",
        "fromUserId": "user-007",
        "toUserId": "user-003",
        "amount": 89.99,
        "description": "Concert tickets",
        "ipAddress": "198.51.100.5",
        "deviceId": "device-grace-laptop",
        "metadata": {"category": "entertainment", "event": "MusicFest2024"},
    },
    {
        "id": "txn-008",
        "fromUserId": "user-010",
        "toUserId": "user-001",
        "amount": 200.00,
        "description": "Freelance work payment",
        "ipAddress": "203.0.113.15",
        "deviceId": "device-jack-desktop",
        "metadata": {"category": "work", "project": "WebDesign"},
    },
    {
        "id": "txn-009",
        "fromUserId": "user-005",
        "toUserId": "user-004",
        "amount": 45.00,
        "description": "Grocery split",
        "ipAddress": "10.0.0.50",
        "deviceId": "device-eva-phone",
        "metadata": {"category": "food", "shared": True},
    },
    {
        "id": "txn-010",
        "fromUserId": "user-008",
        "toUserId": "user-006",
        "amount": 1000.00,
        "description": "Investment return",
        "ipAddress": "172.16.0.10",
        "deviceId": "device-henry-laptop",
        "metadata": {"category": "investment", "returns": True},
    },
    {
        "id": "txn-011",
        "fromUserId": "user-001",
        "toUserId": "user-009",
        "amount": 65.00,
        "description": "Gift money",
        "ipAddress": "192.168.1.101",
        "deviceId": "device-alice-phone",
        "metadata": {"category": "gift", "occasion": "birthday"},
    },
    {
        "id": "txn-012",
        "fromUserId": "user-004",
        "toUserId": "user-007",
        "amount": 180.00,
        "description": "Service payment",
        "ipAddress": "10.0.0.51",
        "deviceId": "device-david-mobile",
        "metadata": {"category": "services", "type": "consulting"},
    },
    {
        "id": "txn-013",
        "fromUserId": "user-003",
        "toUserId": "user-005",
        "amount": 95.00,
        "description": "Utility bill split",
        "ipAddress": "198.51.100.6",
        "deviceId": "device-carol-laptop",
        "metadata": {"category": "utilities", "shared": True},
    },
    {
        "id": "txn-014",
        "fromUserId": "user-009",
        "toUserId": "user-002",
        "amount": 35.00,
        "description": "Parking fee",
        "ipAddress": "203.0.113.16",
        "deviceId": "device-ivy-tablet",
        "metadata": {"category": "transportation", "parking": True},
    },
    {
        "id": "txn-015",
        "fromUserId": "user-006",
        "toUserId": "user-010",
        "amount": 250.00,
        "description": "Equipment purchase",
        "ipAddress": "192.168.1.100",
        "deviceId": "device-frank-desktop",
        "metadata": {"category": "equipment", "business": True},
    },
]


async def load_sample_data(
    database: GraphDatabase,
    users: UserService,
    transactions: TransactionService,
    relationships: RelationshipService,
) -> Dict[str, Any]:
    """
    Replace the graph contents with the demo dataset.

    Everything in the graph is deleted first. Users are written before transactions
    so every transaction finds both participants. Returns the resulting counts.
    """
    logger.info("Loading sample data")
    await database.clear()

    for payload in SAMPLE_USERS:
        await users.upsert_user(UserInput.from_payload(payload))
    logger.info(f"Created {len(SAMPLE_USERS)} sample users")

    for payload in SAMPLE_TRANSACTIONS:
        await transactions.upsert_transaction(TransactionInput.from_payload(payload))
    logger.info(f"Created {len(SAMPLE_TRANSACTIONS)} sample transactions")

    overview = await relationships.network_overview()
    logger.info(f"Sample data loaded: {overview['relationshipBreakdown']}")
    return overview
