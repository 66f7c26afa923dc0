from __future__ import annotations

from typing import Any, List

STAFF = "STAFF"
ADMIN = "ADMIN"
ROLE_CHOICES = (STAFF, ADMIN)

_ALIASES = {
    "staff": STAFF,
    "employee": STAFF,
    "admin": ADMIN,
    "administrator": ADMIN,
    "manager": ADMIN,
}


def normalize_role(role: str) -> str:
    label = (role or "").strip()
    if label.upper() in ROLE_CHOICES:
        return label.upper()
    return _ALIASES.get(label.lower(), "")


def is_admin(member: Any) -> bool:
    return normalize_role(getattr(member, "role", "")) == ADMIN


def require_role(member: Any, role: str) -> Any:
    """Return ``member`` if it holds exactly ``role``; raise PermissionError otherwise."""
    if member is None:
        raise PermissionError("Sign in required.")
    if not getattr(member, "is_active", False):
        raise PermissionError("This account is inactive.")
    required = normalize_role(role)
    if not required:
        raise ValueError(f"Unknown role '{role}'.")
    if normalize_role(getattr(member, "role", "")) == required:
        return member
    raise PermissionError(f"{required.title()} access required.")


def defined_roles() -> List[str]:
    return list(ROLE_CHOICES)
