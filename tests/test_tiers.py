import pytest

from tier_checkout.errors import InvalidTierError, InvalidUserError, MissingUserError
from tier_checkout.tiers import (
    PriceTier, decode_correlation_token, encode_correlation_token, parse_tier, tier_amount
)


def test_parse_tier_accepts_known_tags():
    assert parse_tier("Tier1") is PriceTier.TIER1
    assert parse_tier(PriceTier.TIER3) is PriceTier.TIER3
    assert tier_amount(PriceTier.TIER2) == "25.00"


@pytest.mark.parametrize("tag", ["tier1", "Tier9", "", None, "membership_type_here"])
def test_parse_tier_rejects_unknown_tags(tag):
    with pytest.raises(InvalidTierError):
        parse_tier(tag)


def test_token_round_trip():
    token = encode_correlation_token("user-42", PriceTier.TIER1)
    assert token == "user-42:Tier1"
    assert decode_correlation_token(token) == ("user-42", PriceTier.TIER1)


@pytest.mark.parametrize("user_id", [None, "", "   "])
def test_encode_requires_user(user_id):
    with pytest.raises(MissingUserError):
        encode_correlation_token(user_id, PriceTier.TIER1)


def test_encode_rejects_separator_in_user_id():
    with pytest.raises(InvalidUserError):
        encode_correlation_token("evil:Tier3", PriceTier.TIER1)


def test_encode_rejects_tokens_paypal_would_truncate():
    with pytest.raises(InvalidUserError):
        encode_correlation_token("u" * 127, PriceTier.TIER1)


@pytest.mark.parametrize("token", ["user-42", "a:b:Tier1", ":Tier1", "user-42:Gold", "user-42:"])
def test_decode_rejects_malformed_tokens(token):
    with pytest.raises(ValueError):
        decode_correlation_token(token)
