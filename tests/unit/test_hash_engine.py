"""
Unit tests for the canonical projection and digest of ledger records.

Verifies:
- Determinism: identical projections, identical digests
- Single-field sensitivity across every hashed field
- Canonical bytes: fixed field order, canonical amount and timestamp forms
- Creator-side and reader-side projections agree for an intact record
- Algorithm tags resolve; unknown tags are refused
"""

import hashlib
import json
from dataclasses import replace
from datetime import UTC, datetime, timedelta, timezone
from decimal import Decimal
from uuid import UUID, uuid4

import pytest

from budget_kernel.domain.hash_engine import (
    HASH_FIELDS,
    HashableFields,
    HashAlgorithm,
    canonical_bytes,
    compute_hash,
    is_valid_hash,
    normalize_hash,
    project_record,
    project_wire,
    resolve_algorithm,
)
from budget_kernel.domain.ledger_records import (
    LedgerRecordType,
    LedgerRecordView,
    VerificationStatus,
)
from budget_kernel.exceptions import UnsupportedHashAlgorithmError, ValidationError

REQUEST_ID = UUID("6f1c2f4e-8a55-4b0c-9a1e-0d3b2c1a9f10")
ACTOR_ID = UUID("0b9d7a1c-2e3f-4a5b-8c6d-7e8f9a0b1c2d")
CREATED_AT = datetime(2024, 1, 1, 12, 0, 0, tzinfo=UTC)


@pytest.fixture
def projection() -> HashableFields:
    return HashableFields(
        request_id=REQUEST_ID,
        amount=Decimal("50000"),
        timestamp=CREATED_AT,
        department="ENG",
        project="Lab refresh",
        vendor_address="0xabc123",
        allocated_by=ACTOR_ID,
        category="equipment",
        vendor_name="Acme Supplies",
    )


@pytest.fixture
def record_view(projection) -> LedgerRecordView:
    return LedgerRecordView(
        record_id=uuid4(),
        seq=1,
        record_type=LedgerRecordType.ALLOCATION,
        amount=Decimal("50000.000000000"),
        vendor_id=uuid4(),
        vendor_address="0xabc123",
        vendor_name="Acme Supplies",
        created_by=ACTOR_ID,
        created_at=CREATED_AT,
        data_hash=compute_hash(projection),
        hash_algorithm=HashAlgorithm.SHA256_V1.value,
        verification_status=VerificationStatus.PENDING,
        related_request_id=REQUEST_ID,
        department="ENG",
        project="Lab refresh",
        category="equipment",
    )


class TestCanonicalBytes:

    def test_pairs_in_canonical_order(self, projection):
        decoded = json.loads(canonical_bytes(projection))
        assert [name for name, _ in decoded] == list(HASH_FIELDS)

    def test_value_forms(self, projection):
        decoded = dict(json.loads(canonical_bytes(projection)))
        assert decoded["request_id"] == str(REQUEST_ID)
        assert decoded["amount"] == "50000"
        assert decoded["timestamp"] == "2024-01-01T12:00:00.000000Z"
        assert decoded["allocated_by"] == str(ACTOR_ID)

    def test_no_whitespace(self, projection):
        assert b", " not in canonical_bytes(projection)
        assert b": " not in canonical_bytes(projection)

    def test_missing_fields_are_null(self, projection):
        withdrawal = replace(projection, request_id=None, department=None)
        decoded = dict(json.loads(canonical_bytes(withdrawal)))
        assert decoded["request_id"] is None
        assert decoded["department"] is None

    def test_amount_scale_does_not_matter(self, projection):
        scaled = replace(projection, amount=Decimal("50000.000000000"))
        assert canonical_bytes(scaled) == canonical_bytes(projection)

    def test_timestamp_offset_normalized_to_utc(self, projection):
        shifted = CREATED_AT.astimezone(timezone(timedelta(hours=5)))
        assert canonical_bytes(replace(projection, timestamp=shifted)) == canonical_bytes(
            projection
        )

    def test_float_amount_refused(self, projection):
        with pytest.raises(ValidationError):
            replace(projection, amount=50000.0)


class TestComputeHash:

    def test_deterministic(self, projection):
        assert compute_hash(projection) == compute_hash(replace(projection))

    def test_matches_sha256_of_canonical_bytes(self, projection):
        expected = hashlib.sha256(canonical_bytes(projection)).hexdigest()
        assert compute_hash(projection, HashAlgorithm.SHA256_V1) == expected

    def test_sha3_differs_from_sha256(self, projection):
        assert compute_hash(projection, "sha3-256-v1") != compute_hash(projection, "sha256-v1")

    def test_lowercase_hex_64(self, projection):
        digest = compute_hash(projection)
        assert is_valid_hash(digest)
        assert digest == digest.lower()

    @pytest.mark.parametrize(
        "field, value",
        [
            ("request_id", uuid4()),
            ("amount", Decimal("49999.99")),
            ("timestamp", CREATED_AT + timedelta(microseconds=1)),
            ("department", "OPS"),
            ("project", "Lab refresh 2"),
            ("vendor_address", "0xabc124"),
            ("allocated_by", uuid4()),
            ("category", "software"),
            ("vendor_name", "Acme Supplies Ltd"),
        ],
    )
    def test_single_field_change_changes_hash(self, projection, field, value):
        assert compute_hash(replace(projection, **{field: value})) != compute_hash(projection)

    def test_every_hashed_field_is_covered(self):
        assert len(HASH_FIELDS) == 9


class TestAlgorithms:

    def test_resolve_tag(self):
        assert resolve_algorithm("sha3-256-v1") is HashAlgorithm.SHA3_256_V1

    def test_unknown_tag(self):
        with pytest.raises(UnsupportedHashAlgorithmError) as exc_info:
            resolve_algorithm("md5-v1")
        assert exc_info.value.algorithm == "md5-v1"


class TestHashFormat:

    def test_normalize_strips_prefix_and_case(self):
        assert normalize_hash("0xABCDEF") == "abcdef"

    def test_valid_with_prefix(self):
        assert is_valid_hash("0x" + "a" * 64)

    @pytest.mark.parametrize("value", [None, "", "a" * 63, "g" * 64, "0x" + "a" * 65])
    def test_invalid(self, value):
        assert not is_valid_hash(value)


class TestProjections:

    def test_creator_projection_reproduces_stored_hash(self, record_view):
        assert compute_hash(project_record(record_view)) == record_view.data_hash

    def test_wire_projection_agrees_with_creator(self, record_view):
        wire = record_view.to_wire()
        assert compute_hash(project_wire(wire)) == compute_hash(project_record(record_view))

    def test_wire_carries_amount_as_string(self, record_view):
        wire = record_view.to_wire()
        assert isinstance(wire["amount"], str)
        assert wire["created_at"].endswith("Z")

    def test_wire_projection_detects_edited_amount(self, record_view):
        wire = record_view.to_wire()
        wire["amount"] = "49999"
        assert compute_hash(project_wire(wire)) != record_view.data_hash
