"""
Organization Service
====================

The tenancy operations the auth core depends on:
- Creating an organization together with its system roles
- Existence and membership checks used by tenancy guards
"""

import uuid

from sqlalchemy import exists, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from sentinel_auth.core.exceptions import DuplicateResourceError, OrganizationNotFoundError
from sentinel_auth.core.logging import get_logger
from sentinel_auth.models.organization import Organization
from sentinel_auth.models.user import User
from sentinel_auth.services.rbac_service import RBACService

logger = get_logger(__name__)


class OrganizationService:
    def __init__(self, db: Session):
        self.db = db

    def create_organization(self, name: str) -> Organization:
        """
        Create an organization and seed Admin/Operator/Viewer in one transaction.

        An organization is never visible without its system roles.

        Raises:
            DuplicateResourceError: If the name is taken
        """
        if self.db.scalar(select(exists().where(Organization.name == name))):
            raise DuplicateResourceError("Organization", "name", name)

        try:
            organization = Organization(name=name)
            self.db.add(organization)
            self.db.flush()
            RBACService(self.db).initialize_system_roles(organization.id)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise DuplicateResourceError("Organization", "name", name) from e
        except Exception:
            self.db.rollback()
            raise

        logger.info("Organization created", organization_id=str(organization.id))
        return organization

    def get_organization(self, organization_id: uuid.UUID) -> Organization:
        organization = self.db.get(Organization, organization_id)
        if organization is None:
            raise OrganizationNotFoundError(organization_id)
        return organization

    def organization_exists(self, organization_id: uuid.UUID) -> bool:
        return bool(self.db.scalar(select(exists().where(Organization.id == organization_id))))

    def user_belongs_to_organization(self, user_id: uuid.UUID, organization_id: uuid.UUID) -> bool:
        return bool(
            self.db.scalar(
                select(
                    exists().where(User.id == user_id, User.organization_id == organization_id)
                )
            )
        )
