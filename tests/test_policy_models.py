"""
Tests for policy models: condition wire format, PolicyDocument invariants, record round-trip.
"""

from __future__ import annotations

import math

import pytest

from backend_allowance.core.exceptions import PolicyFormatError
from backend_allowance.policy.models import (
    ActionKind,
    BlockedActionCondition,
    ChainAllowlistCondition,
    MaxValueCondition,
    PolicyDocument,
    WalletPolicyRecord,
    condition_from_dict,
    condition_to_dict,
)


def test_condition_wire_format():
    """Each condition kind serializes with its fixed operator."""
    assert condition_to_dict(ChainAllowlistCondition(chains=("8453",))) == {
        "type": "chain",
        "operator": "in",
        "value": ["8453"],
    }
    assert condition_to_dict(MaxValueCondition(ceiling=15.0)) == {
        "type": "value",
        "operator": "lessThanOrEqual",
        "value": 15,
    }
    assert condition_to_dict(MaxValueCondition(ceiling=12.5))["value"] == 12.5
    assert condition_to_dict(BlockedActionCondition(action=ActionKind.DEPLOY)) == {
        "type": "action",
        "operator": "notEquals",
        "value": "deploy",
    }


def test_condition_operator_must_match_kind():
    """A value condition with the chain operator is rejected."""
    with pytest.raises(PolicyFormatError, match="requires operator"):
        condition_from_dict({"type": "value", "operator": "in", "value": 10})
    with pytest.raises(PolicyFormatError, match="Unknown condition type"):
        condition_from_dict({"type": "time", "operator": "in", "value": 1})
    with pytest.raises(PolicyFormatError, match="Unknown action type"):
        condition_from_dict({"type": "action", "operator": "notEquals", "value": "selfdestruct"})


def test_max_value_condition_rejects_bad_ceilings():
    """Ceiling must be a finite, non-negative number."""
    for bad in (-1, math.inf, math.nan, "10", True):
        with pytest.raises(PolicyFormatError):
            MaxValueCondition(ceiling=bad)


def test_policy_document_invariants():
    """Version literal, non-empty chains, chain condition equals allowed chains."""
    with pytest.raises(PolicyFormatError, match="at least one chain"):
        PolicyDocument(name="p", description="d", allowed_chains=())
    with pytest.raises(PolicyFormatError, match="version"):
        PolicyDocument(name="p", description="d", allowed_chains=("8453",), version="2.0")
    with pytest.raises(PolicyFormatError, match="does not match"):
        PolicyDocument(
            name="p",
            description="d",
            allowed_chains=("8453",),
            global_conditions=(ChainAllowlistCondition(chains=("8453", "1")),),
        )


def test_policy_document_derived_properties():
    """max_usd is the tightest ceiling; no value condition means no limit."""
    doc = PolicyDocument(
        name="p",
        description="d",
        allowed_chains=("8453",),
        global_conditions=(
            MaxValueCondition(ceiling=20),
            BlockedActionCondition(action=ActionKind.DEPLOY),
            MaxValueCondition(ceiling=5),
        ),
    )
    assert doc.max_usd == 5
    assert doc.has_usd_limit is True
    assert doc.blocked_actions == [ActionKind.DEPLOY]

    no_limit = PolicyDocument(name="p", description="d", allowed_chains=("8453",))
    assert no_limit.max_usd is None
    assert no_limit.has_usd_limit is False


def test_record_from_dict_lowercases_addresses():
    """Records read back from JSON are keyed by lowercased addresses."""
    doc = PolicyDocument(
        name="p",
        description="d",
        allowed_chains=("8453",),
        global_conditions=(ChainAllowlistCondition(chains=("8453",)),),
    )
    raw = {
        "walletAddress": "0x" + "AB" * 20,
        "parentAddress": "0x" + "CD" * 20,
        "policy": doc.to_dict(),
        "createdAt": 1000,
        "updatedAt": 2000,
    }
    record = WalletPolicyRecord.from_dict(raw)
    assert record.wallet_address == "0x" + "ab" * 20
    assert record.parent_address == "0x" + "cd" * 20
    assert record.policy == doc
    assert record.created_at == 1000
    assert record.updated_at == 2000
