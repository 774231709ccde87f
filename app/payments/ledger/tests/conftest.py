"""
Pytest fixtures for ledger tests.

Sections:
    - Wallet Fixtures: Wallets in various states
    - Test Data Fixtures: Owner ids
"""

import uuid

import pytest

from payments.ledger.services import WalletLedger
from payments.state_machines import WalletStatus
from payments.tests.factories import WalletFactory


# ==========================================================================
# Test Data Fixtures
# ==========================================================================


@pytest.fixture
def owner_id():
    """Owner of the wallet under test."""
    return uuid.uuid4()


# ==========================================================================
# Wallet Fixtures
# ==========================================================================


@pytest.fixture
def wallet(db, owner_id):
    """Empty active wallet."""
    return WalletLedger.get_or_create_wallet(owner_id)


@pytest.fixture
def funded_wallet(db, owner_id):
    """
    Active wallet funded with 10000 kobo through the ledger.

    The funding credit uses reference FUND-1 so tests can replay it.
    """
    wallet = WalletLedger.get_or_create_wallet(owner_id)
    WalletLedger.credit(owner_id, 10000, "FUND-1")
    wallet.refresh_from_db()
    return wallet


@pytest.fixture
def suspended_wallet(db):
    """Suspended wallet holding 5000 kobo."""
    return WalletFactory(status=WalletStatus.SUSPENDED, available_balance=5000)
