from enum import Enum
from typing import Tuple

from tier_checkout.errors import InvalidTierError, InvalidUserError, MissingUserError

CURRENCY = "USD"

TOKEN_SEPARATOR = ":"

# PayPal rejects custom_id values longer than this
MAX_TOKEN_LENGTH = 127


class PriceTier(str, Enum):
    TIER1 = "Tier1"
    TIER2 = "Tier2"
    TIER3 = "Tier3"


TIER_AMOUNTS = {
    PriceTier.TIER1: "10.00",
    PriceTier.TIER2: "25.00",
    PriceTier.TIER3: "50.00",
}


def parse_tier(tag) -> PriceTier:
    if isinstance(tag, PriceTier):
        return tag
    try:
        return PriceTier(tag)
    except ValueError:
        valid = [t.value for t in PriceTier]
        raise InvalidTierError(f"Invalid tier {tag!r}. Valid: {valid}")


def tier_amount(tier: PriceTier) -> str:
    return TIER_AMOUNTS[tier]


def encode_correlation_token(user_id: str, tier: PriceTier) -> str:
    """Join user id and tier into the value sent as PayPal ``custom_id``.

    The separator is not allowed inside the user id, so decoding never has
    to guess where one part ends.
    """
    if user_id is None or not str(user_id).strip():
        raise MissingUserError("user_id is required")
    user_id = str(user_id).strip()
    if TOKEN_SEPARATOR in user_id:
        raise InvalidUserError(f"user_id must not contain {TOKEN_SEPARATOR!r}")

    token = f"{user_id}{TOKEN_SEPARATOR}{tier.value}"
    if len(token) > MAX_TOKEN_LENGTH:
        raise InvalidUserError(f"user_id too long (max {MAX_TOKEN_LENGTH - len(tier.value) - 1} chars)")
    return token


def decode_correlation_token(token: str) -> Tuple[str, PriceTier]:
    """Split a correlation token back into ``(user_id, tier)``.

    Raises ValueError on anything that was not produced by
    ``encode_correlation_token``.
    """
    parts = token.split(TOKEN_SEPARATOR)
    if len(parts) != 2:
        raise ValueError(f"expected 2 parts, got {len(parts)}")

    user_id, tag = parts
    if not user_id:
        raise ValueError("empty user id")
    try:
        tier = PriceTier(tag)
    except ValueError:
        raise ValueError(f"unknown tier {tag!r}")
    return user_id, tier
