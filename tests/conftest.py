"""Shared test fixtures."""
import os
import sys
import pytest
import tempfile

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from models.database import Database
from models.alerts import Alert
from fakes import FakeDataSource, SAMPLE_PRODUCTS


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name
    db = Database(db_path)
    db.connect()
    yield db
    db.close()
    os.unlink(db_path)


@pytest.fixture
def stocked_db(temp_db):
    """Temporary database holding the sample catalog."""
    temp_db.upsert_products(SAMPLE_PRODUCTS)
    return temp_db


@pytest.fixture
def fake_source():
    return FakeDataSource(SAMPLE_PRODUCTS)


@pytest.fixture
def sample_alert():
    return Alert(
        rule_id="low-stock",
        rule_name="Low Stock Alert",
        type="inventory",
        priority="medium",
        message="2 product(s) have stock below 20 units",
        data={
            "products": [p.to_dict() for p in SAMPLE_PRODUCTS[:2]],
            "count": 2,
            "threshold": 20.0,
        },
        channels=["in-app"],
    )


@pytest.fixture
def value_alert():
    return Alert(
        rule_id="high-value-inventory",
        rule_name="High Value Inventory Alert",
        type="business",
        priority="low",
        message="Inventory value ($60,000.00) exceeds threshold ($50,000.00)",
        data={"currentValue": 60000.0, "threshold": 50000.0, "difference": 10000.0},
        channels=["in-app"],
    )
