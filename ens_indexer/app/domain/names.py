from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

PLACEHOLDER_PREFIX = "token-"

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
WETH_ADDRESS = "0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2"

_DIGITS = re.compile(r"\d")
_EMOJI = re.compile(
    "[\U0001F600-\U0001F64F"
    "\U0001F300-\U0001F5FF"
    "\U0001F680-\U0001F6FF"
    "\U0001F1E0-\U0001F1FF]"
)


def placeholder_name(token_id: int | str) -> str:
    return f"{PLACEHOLDER_PREFIX}{token_id}"


def is_placeholder(name: str | None) -> bool:
    return name is None or name.startswith(PLACEHOLDER_PREFIX)


def looks_canonical(name: str | None) -> bool:
    """Third-party names like '#1234' or a bare label are not trusted."""
    if not name:
        return False
    return name.endswith(".eth") and not name.startswith("#")


def token_id_to_labelhash(token_id: int | str) -> str:
    return "0x" + format(int(token_id), "064x")


def has_numbers(name: str) -> bool:
    return _DIGITS.search(name) is not None


def has_emoji(name: str) -> bool:
    return _EMOJI.search(name) is not None


def is_eth_or_weth(address: str | None) -> bool:
    if not address:
        return False
    return address.lower() in (ZERO_ADDRESS, WETH_ADDRESS)


def normalize_address(address: str | None) -> str | None:
    if not address:
        return None
    return address.lower()


@dataclass(frozen=True)
class ResolvedName:
    """
    Result of an external name lookup.

    `token_id` is the canonical identifier to store, which differs from the
    identifier that was looked up when the name is wrapped and not expired.
    """

    name: str
    token_id: str
    owner: str | None = None
    expiry_date: datetime | None = None
    registration_date: datetime | None = None
    text_records: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class NameRow:
    id: int
    token_id: str
    name: str
    owner_address: str | None = None
    clubs: tuple[str, ...] = ()


@dataclass(frozen=True)
class NameUpsert:
    """
    Write intent for a single ens_names row.

    None means "leave the stored value alone". The owner is only replaced when
    (owner_block_number, owner_log_index) is not older than the stored pair.
    """

    token_id: str
    name: str
    owner_address: str | None = None
    owner_block_number: int | None = None
    owner_log_index: int | None = None
    registrant: str | None = None
    expiry_date: datetime | None = None
    registration_date: datetime | None = None
    last_transfer_date: datetime | None = None
    text_records: dict[str, Any] | None = None

    @property
    def has_numbers(self) -> bool:
        return has_numbers(self.name)

    @property
    def has_emoji(self) -> bool:
        return has_emoji(self.name)
