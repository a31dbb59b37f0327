"""
Requester identity and client-key extraction.

The client key is the part of the counter key that identifies who is being
limited. Address-keyed policies share a counter between clients behind the
same NAT; identity-keyed policies give each account its own counter.
"""

from dataclasses import dataclass
from enum import StrEnum


class KeyStrategy(StrEnum):
    ADDRESS = "address"
    IDENTITY = "identity"
    COMPOSITE = "composite"


@dataclass(frozen=True)
class Requester:
    """
    Who is making the request.

    Attributes:
        address: Network address of the caller.
        account_id: Authenticated account identifier, None if anonymous.
        role: Role supplied by the authentication layer, None if anonymous.
    """

    address: str
    account_id: str | None = None
    role: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.account_id is not None


def client_key(strategy: KeyStrategy, requester: Requester) -> str:
    """Build the client component of the counter key."""
    address_key = f"ip:{requester.address}"

    if strategy == KeyStrategy.ADDRESS or not requester.is_authenticated:
        return address_key

    account_key = f"user:{requester.account_id}"
    if strategy == KeyStrategy.IDENTITY:
        return account_key

    return f"{account_key}|{address_key}"
