"""
RBAC Permission Engine
======================

Role and permission management for multi-tenant authorization.

Handles:
- Global permission catalog (seeding and listing)
- Role CRUD with transactional permission-set replacement
- Atomic conditional role deletion
- User <-> role assignment (idempotent)
- Permission resolution and AND / OR checks
- System role seeding for new organizations

Permissions are never granted to users directly, only through roles.
"""

import uuid
from typing import Iterable, Optional, Sequence

from sqlalchemy import delete, exists, func, insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from sentinel_auth.core.exceptions import (
    CrossTenantAccessDeniedError,
    DuplicateResourceError,
    OrganizationNotFoundError,
    RoleHasAssignedUsersError,
    RoleNotFoundError,
    SystemRoleProtectedError,
    UserNotFoundError,
    ValidationError,
)
from sentinel_auth.core.logging import get_logger
from sentinel_auth.core.security import utcnow
from sentinel_auth.db.upsert import dialect_insert
from sentinel_auth.models.organization import Organization
from sentinel_auth.models.rbac import Permission, Role, RolePermission, UserRole
from sentinel_auth.models.user import User

# Initialize logger
logger = get_logger(__name__)


# ==========================
# Permission Catalog
# ==========================

PERMISSION_CATALOG: dict[str, str] = {
    "containers:read": "View containers and their status",
    "containers:write": "Create, update and remove containers",
    "containers:restart": "Restart containers",
    "alerts:read": "View alerts",
    "alerts:write": "Create and update alert rules",
    "alerts:acknowledge": "Acknowledge and resolve alerts",
    "logs:read": "View logs",
    "logs:export": "Export logs",
    "users:read": "View users",
    "users:write": "Create and update users",
    "users:delete": "Delete users",
    "roles:read": "View roles and permissions",
    "roles:write": "Create, update and assign roles",
    "roles:delete": "Delete roles",
    "api_keys:read": "View API keys",
    "api_keys:write": "Create API keys",
    "api_keys:delete": "Revoke API keys",
    "slo:read": "View SLOs",
    "slo:write": "Create and update SLOs",
    "slo:delete": "Delete SLOs",
    "security:read": "View security scans and findings",
    "security:write": "Run security scans",
    "runbooks:read": "View runbooks",
    "runbooks:write": "Create, update and execute runbooks",
    "runbooks:delete": "Delete runbooks",
    "incidents:read": "View incidents",
    "incidents:write": "Create and update incidents",
}

# None means "every permission in the catalog"
SYSTEM_ROLES: dict[str, tuple[str, Optional[tuple[str, ...]]]] = {
    "Admin": ("Full system access with all permissions", None),
    "Operator": (
        "Can manage containers, alerts, and logs",
        (
            "containers:read",
            "containers:write",
            "containers:restart",
            "alerts:read",
            "alerts:write",
            "alerts:acknowledge",
            "logs:read",
            "logs:export",
        ),
    ),
    "Viewer": (
        "Read-only access to containers, alerts, and logs",
        ("containers:read", "alerts:read", "logs:read"),
    ),
}


# ==========================
# Pure Permission Checks
# ==========================

def has_all(granted: Iterable[str], required: Iterable[str]) -> bool:
    """True when every required permission is granted. Vacuously true for []."""
    granted_set = set(granted)
    return all(p in granted_set for p in required)


def has_any(granted: Iterable[str], required: Iterable[str]) -> bool:
    """True when at least one required permission is granted. False for []."""
    granted_set = set(granted)
    return any(p in granted_set for p in required)


# ==========================
# RBAC Service
# ==========================

class RBACService:
    """
    Role-based access control engine.

    Usage:
        rbac = RBACService(db)
        role = rbac.create_role("Responder", "On-call", org_id, [perm_id])
        rbac.assign_role(user_id, role.id)
        rbac.has_permission(user_id, "alerts:acknowledge")
    """

    def __init__(self, db: Session):
        """
        Initialize RBAC service with database session.

        Args:
            db: SQLAlchemy session
        """
        self.db = db

    # --------------------------
    # Permission Catalog
    # --------------------------

    def seed_permission_catalog(self) -> None:
        """
        Insert any catalog permission that does not exist yet.

        Idempotent; flushes only, the caller owns the transaction.
        """
        rows = []
        for name, description in PERMISSION_CATALOG.items():
            resource, action = name.split(":", 1)
            rows.append(
                {
                    "id": uuid.uuid4(),
                    "name": name,
                    "resource": resource,
                    "action": action,
                    "description": description,
                }
            )

        stmt = (
            dialect_insert(self.db, Permission.__table__)
            .values(rows)
            .on_conflict_do_nothing(index_elements=["name"])
        )
        self.db.execute(stmt)
        self.db.flush()

    def get_available_permissions(self) -> list[Permission]:
        """List the global permission catalog ordered by resource, action."""
        stmt = select(Permission).order_by(Permission.resource, Permission.action)
        return list(self.db.scalars(stmt))

    def _resolve_permission_ids(self, permission_ids: Iterable[uuid.UUID]) -> list[uuid.UUID]:
        """
        De-duplicate and check that every permission id exists.

        Raises:
            ValidationError: If any id is not in the catalog
        """
        wanted = list(dict.fromkeys(permission_ids))
        if not wanted:
            return []

        found = set(self.db.scalars(select(Permission.id).where(Permission.id.in_(wanted))))
        missing = [str(pid) for pid in wanted if pid not in found]
        if missing:
            raise ValidationError(
                message="Unknown permission ids",
                details={"unknown_permission_ids": missing},
            )
        return wanted

    def _link_permissions(self, role_id: uuid.UUID, permission_ids: Sequence[uuid.UUID]) -> None:
        if not permission_ids:
            return
        self.db.execute(
            insert(RolePermission),
            [{"role_id": role_id, "permission_id": pid} for pid in permission_ids],
        )

    # --------------------------
    # Role CRUD
    # --------------------------

    def create_role(
        self,
        name: str,
        description: Optional[str],
        organization_id: uuid.UUID,
        permission_ids: Iterable[uuid.UUID] = (),
    ) -> Role:
        """
        Create a custom role and link its permissions in one transaction.

        Args:
            name: Role name, unique within the organization
            description: Free text
            organization_id: Owning organization
            permission_ids: Catalog permission ids to grant

        Returns:
            The created role with permissions loaded

        Raises:
            OrganizationNotFoundError: If the organization does not exist
            ValidationError: If a permission id is unknown
            DuplicateResourceError: If the name is taken in the organization
        """
        try:
            if self.db.get(Organization, organization_id) is None:
                raise OrganizationNotFoundError(organization_id)
            self._ensure_name_available(organization_id, name)
            ids = self._resolve_permission_ids(permission_ids)

            role = Role(
                name=name,
                description=description,
                organization_id=organization_id,
                is_system_role=False,
            )
            self.db.add(role)
            self.db.flush()
            self._link_permissions(role.id, ids)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise DuplicateResourceError("Role", "name", name) from e
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(role)
        logger.info(
            "Role created",
            role_id=str(role.id),
            organization_id=str(organization_id),
            permission_count=len(ids),
        )
        return role

    def update_role(
        self,
        role_id: uuid.UUID,
        name: Optional[str] = None,
        description: Optional[str] = None,
        permission_ids: Optional[Iterable[uuid.UUID]] = None,
        organization_id: Optional[uuid.UUID] = None,
    ) -> Role:
        """
        Update a role. ``permission_ids``, when given, replaces the whole set.

        Raises:
            RoleNotFoundError: If the role does not exist (or is outside
                ``organization_id`` when that is given)
            ValidationError: If a permission id is unknown
            DuplicateResourceError: If the new name is taken
        """
        role = self.get_role(role_id, organization_id=organization_id)

        try:
            if name is not None and name != role.name:
                self._ensure_name_available(role.organization_id, name)
                role.name = name
            if description is not None:
                role.description = description
            if permission_ids is not None:
                ids = self._resolve_permission_ids(permission_ids)
                self.db.execute(delete(RolePermission).where(RolePermission.role_id == role.id))
                self._link_permissions(role.id, ids)
            role.updated_at = utcnow()
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise DuplicateResourceError("Role", "name", name) from e
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(role)
        logger.info("Role updated", role_id=str(role.id))
        return role

    def delete_role(self, role_id: uuid.UUID, organization_id: Optional[uuid.UUID] = None) -> None:
        """
        Delete a custom role that nobody holds.

        The check and the delete are one conditional statement, so two
        concurrent callers cannot both pass the check.

        Raises:
            SystemRoleProtectedError: If the role is a system role
            RoleHasAssignedUsersError: If any user holds the role
            RoleNotFoundError: If the role does not exist
        """
        assigned = exists().where(UserRole.role_id == Role.id)
        stmt = delete(Role).where(
            Role.id == role_id,
            Role.is_system_role.is_(False),
            ~assigned,
        )
        if organization_id is not None:
            stmt = stmt.where(Role.organization_id == organization_id)

        deleted_id = self.db.execute(
            stmt.returning(Role.id),
            execution_options={"synchronize_session": False},
        ).scalar_one_or_none()

        if deleted_id is not None:
            self.db.commit()
            logger.info("Role deleted", role_id=str(role_id))
            return

        role = self.db.execute(
            select(Role).where(Role.id == role_id).execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if role is None or (organization_id is not None and role.organization_id != organization_id):
            raise RoleNotFoundError(role_id)
        if role.is_system_role:
            raise SystemRoleProtectedError(role_id)

        user_count = self.db.scalar(
            select(func.count()).select_from(UserRole).where(UserRole.role_id == role_id)
        )
        raise RoleHasAssignedUsersError(role_id, user_count)

    def get_roles(self, organization_id: uuid.UUID) -> list[Role]:
        """Roles of one organization with permissions, system roles first then by name."""
        stmt = (
            select(Role)
            .where(Role.organization_id == organization_id)
            .options(selectinload(Role.permissions))
            .order_by(Role.is_system_role.desc(), Role.name)
        )
        return list(self.db.scalars(stmt))

    def get_role(self, role_id: uuid.UUID, organization_id: Optional[uuid.UUID] = None) -> Role:
        """
        Fetch one role.

        Raises:
            RoleNotFoundError: If absent, or outside ``organization_id``
        """
        role = self.db.get(Role, role_id)
        if role is None or (organization_id is not None and role.organization_id != organization_id):
            raise RoleNotFoundError(role_id)
        return role

    def _ensure_name_available(self, organization_id: uuid.UUID, name: str) -> None:
        taken = self.db.scalar(
            select(
                exists().where(Role.organization_id == organization_id, Role.name == name)
            )
        )
        if taken:
            raise DuplicateResourceError("Role", "name", name)

    # --------------------------
    # Resolution & Checks
    # --------------------------

    def get_user_roles(self, user_id: uuid.UUID) -> list[Role]:
        stmt = (
            select(Role)
            .join(UserRole, UserRole.role_id == Role.id)
            .where(UserRole.user_id == user_id)
            .order_by(Role.name)
        )
        return list(self.db.scalars(stmt))

    def get_user_permissions(self, user_id: uuid.UUID) -> set[str]:
        """Distinct union of permission names reachable through the user's roles."""
        stmt = (
            select(Permission.name)
            .join(RolePermission, RolePermission.permission_id == Permission.id)
            .join(UserRole, UserRole.role_id == RolePermission.role_id)
            .where(UserRole.user_id == user_id)
            .distinct()
        )
        return set(self.db.scalars(stmt))

    def get_user_roles_and_permissions(self, user_id: uuid.UUID) -> tuple[list[str], list[str]]:
        """Role names and sorted permission names, as embedded in access tokens."""
        roles = [role.name for role in self.get_user_roles(user_id)]
        permissions = sorted(self.get_user_permissions(user_id))
        return roles, permissions

    def has_permission(self, user_id: uuid.UUID, permission: str) -> bool:
        return permission in self.get_user_permissions(user_id)

    def has_all_permissions(self, user_id: uuid.UUID, permissions: Iterable[str]) -> bool:
        required = list(permissions)
        if not required:
            return True
        return has_all(self.get_user_permissions(user_id), required)

    def has_any_permission(self, user_id: uuid.UUID, permissions: Iterable[str]) -> bool:
        required = list(permissions)
        if not required:
            return False
        return has_any(self.get_user_permissions(user_id), required)

    # --------------------------
    # Assignment
    # --------------------------

    def assign_role(
        self,
        user_id: uuid.UUID,
        role_id: uuid.UUID,
        organization_id: Optional[uuid.UUID] = None,
    ) -> None:
        """
        Grant a role to a user. Assigning an already held role is a no-op.

        Raises:
            UserNotFoundError: If the user does not exist
            RoleNotFoundError: If the role does not exist
            CrossTenantAccessDeniedError: If user, role and (optionally)
                ``organization_id`` do not all share one organization
        """
        user = self.db.get(User, user_id)
        if user is None:
            raise UserNotFoundError(user_id)
        role = self.db.get(Role, role_id)
        if role is None:
            raise RoleNotFoundError(role_id)
        self._check_same_tenant(user, role, organization_id)

        stmt = (
            dialect_insert(self.db, UserRole.__table__)
            .values(user_id=user_id, role_id=role_id, assigned_at=utcnow())
            .on_conflict_do_nothing(index_elements=["user_id", "role_id"])
        )
        try:
            self.db.execute(stmt)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info("Role assigned", user_id=str(user_id), role_id=str(role_id))

    def remove_role(
        self,
        user_id: uuid.UUID,
        role_id: uuid.UUID,
        organization_id: Optional[uuid.UUID] = None,
    ) -> None:
        """Revoke a role from a user. Removing a role the user lacks is a no-op."""
        if organization_id is not None:
            role = self.db.get(Role, role_id)
            if role is not None and role.organization_id != organization_id:
                raise CrossTenantAccessDeniedError()

        try:
            self.db.execute(
                delete(UserRole).where(UserRole.user_id == user_id, UserRole.role_id == role_id)
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        logger.info("Role removed", user_id=str(user_id), role_id=str(role_id))

    @staticmethod
    def _check_same_tenant(user: User, role: Role, organization_id: Optional[uuid.UUID]) -> None:
        if user.organization_id != role.organization_id:
            raise CrossTenantAccessDeniedError()
        if organization_id is not None and role.organization_id != organization_id:
            raise CrossTenantAccessDeniedError()

    # --------------------------
    # System Roles
    # --------------------------

    def initialize_system_roles(self, organization_id: uuid.UUID) -> list[Role]:
        """
        Seed Admin, Operator and Viewer for a new organization.

        Flushes only: the caller's transaction (organization creation)
        commits or rolls back the organization and its roles together.
        """
        catalog = {name: pid for pid, name in self.db.execute(select(Permission.id, Permission.name))}

        roles = []
        for name, (description, permission_names) in SYSTEM_ROLES.items():
            if permission_names is None:
                ids = list(catalog.values())
            else:
                missing = [p for p in permission_names if p not in catalog]
                if missing:
                    logger.warning(
                        "System role references permissions missing from the catalog",
                        role=name,
                        missing=missing,
                    )
                ids = [catalog[p] for p in permission_names if p in catalog]

            role = Role(
                name=name,
                description=description,
                organization_id=organization_id,
                is_system_role=True,
            )
            self.db.add(role)
            self.db.flush()
            self._link_permissions(role.id, ids)
            roles.append(role)

        self.db.flush()
        logger.info("System roles initialized", organization_id=str(organization_id))
        return roles
