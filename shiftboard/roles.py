from __future__ import annotations

import hashlib
from typing import Dict, List, Optional


GLOBAL_ROLE_ADMIN = "admin"
GLOBAL_ROLE_USER = "user"
GLOBAL_ROLES = (GLOBAL_ROLE_ADMIN, GLOBAL_ROLE_USER)

COMPANY_ROLE_OWNER = "owner"
COMPANY_ROLE_MANAGER = "manager"
COMPANY_ROLE_MEMBER = "member"
COMPANY_ROLES = (COMPANY_ROLE_OWNER, COMPANY_ROLE_MANAGER, COMPANY_ROLE_MEMBER)

# higher rank includes everything below it
_COMPANY_RANK: Dict[str, int] = {
    COMPANY_ROLE_MEMBER: 1,
    COMPANY_ROLE_MANAGER: 2,
    COMPANY_ROLE_OWNER: 3,
}

_COMPANY_ALIASES: Dict[str, str] = {
    "employee": COMPANY_ROLE_MEMBER,
    "staff": COMPANY_ROLE_MEMBER,
    "viewer": COMPANY_ROLE_MEMBER,
    "mgr": COMPANY_ROLE_MANAGER,
    "admin": COMPANY_ROLE_OWNER,
}

# Shift block colours, picked per employee role label.
ROLE_PALETTE: List[str] = [
    "#2f6f9f",
    "#3d8b5a",
    "#8a5a9e",
    "#b0703a",
    "#3a8a8a",
    "#9e4a5a",
    "#6a7a2f",
    "#4a5a9e",
]
UNASSIGNED_COLOR = "#5a5a5a"


def normalize_role(role: Optional[str]) -> str:
    return (role or "").strip().lower()


def normalize_company_role(role: Optional[str]) -> str:
    label = normalize_role(role)
    label = _COMPANY_ALIASES.get(label, label)
    if label not in COMPANY_ROLES:
        raise ValueError(f"Unsupported company role '{role}'.")
    return label


def is_admin(global_role: Optional[str]) -> bool:
    return normalize_role(global_role) == GLOBAL_ROLE_ADMIN


def can_read_company(global_role: Optional[str], company_role: Optional[str]) -> bool:
    if is_admin(global_role):
        return True
    return normalize_role(company_role) in _COMPANY_RANK


def can_edit_company(global_role: Optional[str], company_role: Optional[str]) -> bool:
    """Owners and managers can change schedules; members only read them."""
    if is_admin(global_role):
        return True
    return _COMPANY_RANK.get(normalize_role(company_role), 0) >= _COMPANY_RANK[COMPANY_ROLE_MANAGER]


def can_manage_company(global_role: Optional[str], company_role: Optional[str]) -> bool:
    if is_admin(global_role):
        return True
    return normalize_role(company_role) == COMPANY_ROLE_OWNER


def palette_for_role(role: Optional[str]) -> str:
    label = normalize_role(role)
    if not label:
        return UNASSIGNED_COLOR
    digest = hashlib.md5(label.encode("utf-8")).digest()
    return ROLE_PALETTE[digest[0] % len(ROLE_PALETTE)]


def grouped_by_role(employees: List[Dict]) -> Dict[str, List[Dict]]:
    """Employees keyed by role label, unlabeled ones under ``Other``."""
    mapping: Dict[str, List[Dict]] = {}
    for employee in employees:
        label = (employee.get("role") or "").strip() or "Other"
        mapping.setdefault(label, []).append(employee)
    for entries in mapping.values():
        entries.sort(key=lambda item: (item.get("name") or "").lower())
    return dict(sorted(mapping.items()))
