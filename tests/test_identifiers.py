"""Tests for event identifier generation."""
import re
import pytest
from lineage_proxy.identifiers import (
    IdentifierGenerator,
    filename_for,
    parse_identifier,
    random_token,
    validate_identifier,
)

SAFE = re.compile(r"^[0-9a-z_-]+$")


def test_coordinated_identifier_format():
    """Test sequence is zero-padded to three digits."""
    gen = IdentifierGenerator(token_factory=lambda: "a1b2c3d4-e5f6-7890-abcd-ef1234567890")
    assert gen.generate(1) == "001_lineage_data_a1b2c3d4-e5f6-7890-abcd-ef1234567890"
    assert gen.generate(42).startswith("042_lineage_data_")


def test_sequence_grows_past_width():
    """Test sequences beyond 999 are not truncated."""
    gen = IdentifierGenerator()
    assert gen.generate(1000).startswith("1000_lineage_data_")
    assert gen.generate(123456).startswith("123456_lineage_data_")


def test_sort_order_follows_sequence_within_width():
    gen = IdentifierGenerator()
    ids = [gen.generate(n) for n in (3, 10, 250, 999)]
    assert sorted(ids) == ids


def test_fallback_uses_clock():
    """Test no sequence means the clock value is used."""
    gen = IdentifierGenerator(clock=lambda: 1718000000123456)
    identifier = gen.generate()
    component, token = parse_identifier(identifier)
    assert component == "1718000000123456"
    assert len(token) == 36


def test_negative_sequence_rejected():
    with pytest.raises(ValueError):
        IdentifierGenerator().generate(-1)


def test_random_token_shape():
    token = random_token()
    assert re.fullmatch(r"[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}", token)


@pytest.mark.parametrize("coordinated", [True, False])
def test_identifiers_unique(coordinated):
    """Test 10,000 identifiers never collide, with or without a counter."""
    gen = IdentifierGenerator()
    if coordinated:
        ids = [gen.generate(n % 7) for n in range(10_000)]
    else:
        ids = [gen.generate() for _ in range(10_000)]
    assert len(set(ids)) == 10_000
    assert all(SAFE.match(i) for i in ids)
    assert all(validate_identifier(i) == i for i in ids)


@pytest.mark.parametrize("value", [
    "../001_lineage_data_a1b2c3d4-e5f6-7890-abcd-ef1234567890",
    "001_lineage_data_a1b2c3d4-e5f6-7890-abcd-ef1234567890/x",
    "001_lineage_data_nothex",
    "lineage_data_a1b2c3d4-e5f6-7890-abcd-ef1234567890",
    "001_lineage_data_a1b2c3d4-e5f6-7890-abcd-ef1234567890\n",
    "\u0661\u0662_lineage_data_a1b2c3d4-e5f6-7890-abcd-ef1234567890",
    "",
])
def test_validate_rejects_unsafe(value):
    with pytest.raises(ValueError):
        validate_identifier(value)


def test_filename_for():
    assert filename_for("001_lineage_data_x") == "001_lineage_data_x.json"
