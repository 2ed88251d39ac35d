"""Account identities and role placeholders."""

from __future__ import annotations

from dataclasses import dataclass

from stellar_sdk import StrKey

from race_ledger.errors import InvalidIdentity


@dataclass(frozen=True)
class RoleTag:
    """A share owner that is a role ("platform", "creator") rather than an account.

    Role-tagged shares accrue but cannot be claimed until an updater assigns
    them to a concrete address.
    """

    role: str

    def __str__(self) -> str:
        return f"role:{self.role}"


def is_valid_identity(address: object) -> bool:
    return isinstance(address, str) and StrKey.is_valid_ed25519_public_key(address)


def require_identity(address: object) -> str:
    """Return ``address`` if it is a valid account strkey, else raise InvalidIdentity."""
    if not is_valid_identity(address):
        raise InvalidIdentity(f"not a valid account address: {address!r}")
    return address  # type: ignore[return-value]


def is_role(owner: object) -> bool:
    return isinstance(owner, RoleTag)


def short(address: str) -> str:
    """Abbreviate an address for log lines."""
    return address[:12] if len(address) > 12 else address
