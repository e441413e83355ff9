"""
Tests for the journal record schemas in config/schemas/.
"""

import json
import pytest

from src.staking.journal import RECORD_TYPES, SCHEMA_DIR, load_schema


EXPECTED_TITLES = {
    "news": "News Item Record",
    "pool": "Pool Record",
    "stake": "Pool Stake Record",
    "settlement": "Settlement Record",
    "news_resolution": "News Resolution Record",
}


@pytest.mark.parametrize("record_type", sorted(RECORD_TYPES))
def test_schema_loads(record_type):
    """Test that each schema file exists and loads."""
    path = SCHEMA_DIR / RECORD_TYPES[record_type][1]
    assert path.exists()
    with open(path) as f:
        schema = json.load(f)
    assert schema["title"] == EXPECTED_TITLES[record_type]


@pytest.mark.parametrize("record_type", sorted(RECORD_TYPES))
def test_record_type_is_pinned(record_type):
    """Test that every schema requires its own record_type constant."""
    schema = load_schema(record_type)
    assert "record_type" in schema["required"]
    assert schema["properties"]["record_type"]["const"] == record_type


def test_pool_requires_creator_stake_id():
    """Test that pool records carry the creator stake id for replay."""
    schema = load_schema("pool")
    assert "creator_stake_id" in schema["required"]


def test_settlement_payout_amount_positive():
    """Test that settlement payouts reference positive stake amounts."""
    schema = load_schema("settlement")
    assert schema["properties"]["payouts"]["items"]["properties"]["amount"]["minimum"] == 1


def test_news_resolution_outcome_enum():
    """Test that news resolves only to YES or NO."""
    schema = load_schema("news_resolution")
    assert schema["properties"]["outcome"]["enum"] == ["YES", "NO"]
