"""Claims-based principal for authenticated requests."""
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

ROLE_CLAIM = "role"
NAME_CLAIM = "name"


@dataclass(frozen=True)
class Claim:
    """A single type/value statement about the caller."""

    type: str
    value: str


class ClaimsPrincipal:
    """
    The authenticated caller, as a flat list of claims.

    A principal with no authentication_type is anonymous.
    """

    def __init__(
        self,
        claims: Iterable[Claim] = (),
        authentication_type: str | None = None,
    ) -> None:
        self._claims = list(claims)
        self.authentication_type = authentication_type

    @classmethod
    def from_token_payload(
        cls,
        payload: Mapping[str, Any],
        authentication_type: str,
    ) -> "ClaimsPrincipal":
        """Build a principal from decoded JWT claims. List values become repeated claims."""
        claims = []
        for claim_type, value in payload.items():
            values = value if isinstance(value, list) else [value]
            claims.extend(Claim(claim_type, str(item)) for item in values if item is not None)
        return cls(claims, authentication_type)

    @property
    def claims(self) -> tuple[Claim, ...]:
        return tuple(self._claims)

    @property
    def is_authenticated(self) -> bool:
        return self.authentication_type is not None

    @property
    def role(self) -> str | None:
        """The first role claim, if any."""
        return self.find_first(ROLE_CLAIM)

    @property
    def name(self) -> str | None:
        return self.find_first(NAME_CLAIM)

    def find_first(self, claim_type: str, ignore_case: bool = False) -> str | None:
        """Return the value of the first claim of the given type."""
        for claim in self._claims:
            if claim.type == claim_type or (ignore_case and claim.type.lower() == claim_type.lower()):
                return claim.value
        return None

    def has_claim(self, claim_type: str) -> bool:
        return any(claim.type == claim_type for claim in self._claims)

    def add_claims(self, claims: Iterable[Claim]) -> None:
        self._claims.extend(claims)

    def __repr__(self) -> str:
        return f"ClaimsPrincipal(authentication_type={self.authentication_type!r}, claims={self._claims!r})"
