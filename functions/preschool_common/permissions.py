# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

"""
Role-based permission model for organization members.

Each member holds a role and a map of module -> {view, create, edit, delete}
flags. Stored maps are parsed into dataclasses; members without stored
permissions fall back to the defaults of their role.
"""

from dataclasses import asdict, dataclass, field
from typing import Dict, Iterable, Optional

from dacite import Config, from_dict

from preschool_common.types import PermissionAction, UserRole

MODULES = (
    "students",
    "staff",
    "curriculum",
    "messages",
    "attendance",
    "reports",
    "analytics",
    "billing",
    "settings",
    "permissions",
    "help",
    "guardians",
    "meals",
    "calendar",
    "dashboard",
    "classes",
)


@dataclass
class ModulePermission:
    view: bool = False
    create: bool = False
    edit: bool = False
    delete: bool = False

    def allows(self, action: PermissionAction | str) -> bool:
        return bool(getattr(self, str(action), False))


@dataclass
class UserPermissions:
    students: Optional[ModulePermission] = None
    staff: Optional[ModulePermission] = None
    curriculum: Optional[ModulePermission] = None
    messages: Optional[ModulePermission] = None
    attendance: Optional[ModulePermission] = None
    reports: Optional[ModulePermission] = None
    analytics: Optional[ModulePermission] = None
    billing: Optional[ModulePermission] = None
    settings: Optional[ModulePermission] = None
    permissions: Optional[ModulePermission] = None
    help: Optional[ModulePermission] = None
    guardians: Optional[ModulePermission] = None
    meals: Optional[ModulePermission] = None
    calendar: Optional[ModulePermission] = None
    dashboard: Optional[ModulePermission] = None
    classes: Optional[ModulePermission] = None

    def get(self, module: str) -> Optional[ModulePermission]:
        if module not in MODULES:
            return None
        return getattr(self, module)

    def as_dict(self) -> Dict[str, dict]:
        """Return the stored form, omitting modules with no entry."""
        result: Dict[str, dict] = {}
        for module in MODULES:
            perm = getattr(self, module)
            if perm is not None:
                result[module] = asdict(perm)
        return result


def _flags(view, create, edit, delete) -> ModulePermission:
    return ModulePermission(view=view, create=create, edit=edit, delete=delete)


_ALL = (True, True, True, True)
_NONE = (False, False, False, False)
_VIEW = (True, False, False, False)

# Module order matches MODULES.
_DEFAULT_MATRIX: Dict[UserRole, tuple] = {
    UserRole.ADMIN: (_ALL,) * len(MODULES),
    UserRole.TEACHER: (
        (True, False, True, False),  # students
        _VIEW,  # staff
        (True, True, True, False),  # curriculum
        _ALL,  # messages
        (True, True, True, False),  # attendance
        (True, True, False, False),  # reports
        _VIEW,  # analytics
        _NONE,  # billing
        _NONE,  # settings
        _NONE,  # permissions
        _VIEW,  # help
        (True, True, True, False),  # guardians
        (True, True, True, False),  # meals
        (True, True, True, False),  # calendar
        _VIEW,  # dashboard
        (True, True, True, False),  # classes
    ),
    UserRole.STAFF: (
        _VIEW,  # students
        _VIEW,  # staff
        _VIEW,  # curriculum
        _ALL,  # messages
        (True, True, False, False),  # attendance
        _VIEW,  # reports
        _NONE,  # analytics
        _NONE,  # billing
        _NONE,  # settings
        _NONE,  # permissions
        _VIEW,  # help
        _VIEW,  # guardians
        (True, True, False, False),  # meals
        _VIEW,  # calendar
        _VIEW,  # dashboard
        _NONE,  # classes
    ),
    UserRole.PARENT: (
        _VIEW,  # students
        _VIEW,  # staff
        _VIEW,  # curriculum
        _ALL,  # messages
        _VIEW,  # attendance
        _NONE,  # reports
        _NONE,  # analytics
        _VIEW,  # billing
        _NONE,  # settings
        _NONE,  # permissions
        _VIEW,  # help
        _NONE,  # guardians
        _VIEW,  # meals
        _VIEW,  # calendar
        _VIEW,  # dashboard
        _NONE,  # classes
    ),
}


def default_permissions(role: UserRole | str) -> UserPermissions:
    """Return a fresh copy of the default permissions for a role."""
    rows = _DEFAULT_MATRIX[UserRole(role)]
    return UserPermissions(
        **{module: _flags(*row) for module, row in zip(MODULES, rows)}
    )


def parse_permissions(raw: Optional[dict]) -> UserPermissions:
    """Parse a stored permissions map; unknown modules are ignored."""
    if not raw:
        return UserPermissions()
    known = {k: v for k, v in raw.items() if k in MODULES and isinstance(v, dict)}
    return from_dict(
        data_class=UserPermissions,
        data=known,
        config=Config(check_types=False),
    )


def merge_permissions(
    current: UserPermissions, updates: UserPermissions
) -> UserPermissions:
    """Overlay module entries from `updates` on top of `current`."""
    merged = current.as_dict()
    merged.update(updates.as_dict())
    return parse_permissions(merged)


def parse_role(value: Optional[str]) -> Optional[UserRole]:
    if not value:
        return None
    try:
        return UserRole(value.lower())
    except ValueError:
        return None


def has_permission(
    role: Optional[UserRole],
    permissions: UserPermissions,
    module: str,
    action: PermissionAction | str,
) -> bool:
    if role is None:
        return False
    if role == UserRole.ADMIN:
        return True
    module_permissions = permissions.get(module)
    if module_permissions is None:
        return False
    return module_permissions.allows(action)


def is_admin_email(email: Optional[str], admin_emails: Iterable[str]) -> bool:
    normalized = (email or "").lower()
    if not normalized:
        return False
    return normalized in {e.lower() for e in admin_emails} or "admin@" in normalized


@dataclass
class Access:
    """The effective role and permissions of a user within one organization."""

    role: Optional[UserRole] = None
    permissions: UserPermissions = field(default_factory=UserPermissions)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def can(self, module: str, action: PermissionAction | str) -> bool:
        return has_permission(self.role, self.permissions, module, action)


def resolve_access(
    email: Optional[str],
    member: Optional[dict],
    admin_emails: Iterable[str],
) -> Access:
    """
    Work out what a user may do in an organization.

    Admin e-mail addresses always get admin access. Otherwise the member
    document decides: its role (staff when unset) and its stored permissions,
    or the role defaults when none are stored. Non-members get no access.
    """
    if is_admin_email(email, admin_emails):
        return Access(role=UserRole.ADMIN, permissions=default_permissions(UserRole.ADMIN))

    if member is None:
        return Access()

    raw_role = member.get("role")
    role = parse_role(raw_role) if raw_role else UserRole.STAFF
    if role is None:
        return Access()

    stored = member.get("permissions")
    if stored:
        return Access(role=role, permissions=parse_permissions(stored))
    return Access(role=role, permissions=default_permissions(role))
