"""
Identity attributes derived from verified token claims.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from shared.logging import get_logger


class Role(str, Enum):
    """Application roles."""

    ADMIN = "ADMIN"
    USER = "USER"

    @property
    def authority(self) -> str:
        return f"ROLE_{self.value}"

    @classmethod
    def from_string(cls, value: Optional[str]) -> "Role":
        """Normalize a role name, defaulting anything unrecognized to USER."""
        if not value:
            return cls.USER
        cleaned = value.replace("ROLE_", "").strip().upper()
        try:
            return cls(cleaned)
        except ValueError:
            return cls.USER


@dataclass(frozen=True)
class Principal:
    """Request-scoped identity of the caller."""

    subject: str
    email: str
    name: str
    role: Role

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


def _text_claim(claims: Dict[str, Any], name: str) -> Optional[str]:
    value = claims.get(name)
    if isinstance(value, str) and value:
        return value
    return None


class ClaimsExtractor:
    """Builds a Principal from verified claims.

    Every attribute has a fallback, so extraction cannot fail:

    - email: ``email``, then ``cognito:username``
    - role: ``custom:role``, then the first ``cognito:groups`` entry
      upper-cased, then USER
    - name: ``name``, then ``cognito:username``, then the local part of the
      ``email`` claim, then empty
    """

    def __init__(self) -> None:
        self.logger = get_logger("auth.claims")

    def extract(self, claims: Dict[str, Any]) -> Principal:
        principal = Principal(
            subject=claims.get("sub") or "",
            email=self.extract_email(claims),
            name=self.extract_name(claims),
            role=Role.from_string(self.extract_role(claims)),
        )
        self.logger.debug("Derived principal", email=principal.email, role=principal.role.value)
        return principal

    @staticmethod
    def extract_email(claims: Dict[str, Any]) -> str:
        return _text_claim(claims, "email") or _text_claim(claims, "cognito:username") or ""

    @staticmethod
    def extract_role(claims: Dict[str, Any]) -> str:
        custom_role = _text_claim(claims, "custom:role")
        if custom_role:
            return custom_role

        groups = claims.get("cognito:groups")
        if isinstance(groups, list) and groups and isinstance(groups[0], str):
            return groups[0].upper()

        return Role.USER.value

    @staticmethod
    def extract_name(claims: Dict[str, Any]) -> str:
        name = _text_claim(claims, "name") or _text_claim(claims, "cognito:username")
        if name:
            return name

        email = _text_claim(claims, "email")
        if email and "@" in email:
            return email[:email.index("@")]
        return ""
