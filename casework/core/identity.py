"""User directory backing the ``resolve_user`` lookup."""

import uuid
from typing import Iterable, List, Optional
from sqlalchemy import func
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from ..models.case import User, UserRole
from ..models.defaults import DEFAULT_USERS
from ..storage.database import session_scope
from ..storage.models import UserModel
from .exceptions import NotFoundError, PermissionDeniedError, StorageError, WorkflowValidationError
from .logging import get_logger

logger = get_logger(__name__)


def _to_user(model: UserModel) -> User:
    return User(
        id=model.id,
        name=model.name,
        email=model.email,
        role=UserRole(model.role),
        avatar_url=model.avatar_url,
    )


class UserDirectory:
    """Looks up the people who can act on cases."""

    def __init__(self, db_session: Optional[Session] = None):
        self._db_session = db_session

    def seed(self, users: Iterable[User] = DEFAULT_USERS) -> int:
        """Insert users that are not stored yet and return how many were added."""
        added = 0
        try:
            with session_scope(self._db_session) as db:
                for user in users:
                    if db.get(UserModel, user.id) is not None:
                        continue
                    db.add(UserModel(
                        id=user.id,
                        name=user.name,
                        email=user.email,
                        role=user.role.value,
                        avatar_url=user.avatar_url,
                    ))
                    added += 1
                db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Database error while seeding users: {str(e)}")
            raise StorageError(f"Failed to seed users: {str(e)}", operation="seed", table="users")

        if added:
            logger.info(f"Seeded {added} users")
        return added

    def list_users(self) -> List[User]:
        try:
            with session_scope(self._db_session) as db:
                return [_to_user(model) for model in db.query(UserModel).order_by(UserModel.id).all()]
        except SQLAlchemyError as e:
            logger.error(f"Database error while listing users: {str(e)}")
            raise StorageError(f"Failed to list users: {str(e)}", operation="list", table="users")

    def resolve_user(self, user_id: Optional[str]) -> Optional[User]:
        """Return the user with ``user_id``, or None when unknown."""
        if not user_id:
            return None
        try:
            with session_scope(self._db_session) as db:
                model = db.get(UserModel, user_id)
                return _to_user(model) if model is not None else None
        except SQLAlchemyError as e:
            logger.error(f"Database error while resolving user {user_id}: {str(e)}")
            raise StorageError(f"Failed to resolve user: {str(e)}", operation="get", table="users")

    def get_user(self, user_id: str) -> User:
        user = self.resolve_user(user_id)
        if user is None:
            raise NotFoundError(f"User with ID '{user_id}' not found", resource="user", resource_id=user_id)
        return user

    def invite_user(self, email: str, role: UserRole = UserRole.MEMBER, name: Optional[str] = None) -> User:
        """
        Add a user by email. The display name defaults to the email's local part.

        Raises:
            WorkflowValidationError: If the email is malformed or already taken
        """
        email = (email or "").strip()
        if "@" not in email:
            raise WorkflowValidationError(f"Invalid email address: '{email}'")

        user = User(
            id=f"user-{uuid.uuid4().hex[:8]}",
            name=(name or "").strip() or email.split("@")[0],
            email=email,
            role=role,
            avatar_url=f"https://i.pravatar.cc/150?u={email.lower()}",
        )
        try:
            with session_scope(self._db_session) as db:
                existing = db.query(UserModel).filter(func.lower(UserModel.email) == email.lower()).first()
                if existing is not None:
                    raise WorkflowValidationError("A user with this email already exists.")
                db.add(UserModel(
                    id=user.id,
                    name=user.name,
                    email=user.email,
                    role=user.role.value,
                    avatar_url=user.avatar_url,
                ))
                db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Database error while inviting user: {str(e)}")
            raise StorageError(f"Failed to store user: {str(e)}", operation="create", table="users")

        logger.info(f"Invited user {user.id} as {user.role.value}")
        return user

    def update_user(self, user_id: str, name: Optional[str] = None, role: Optional[UserRole] = None) -> User:
        if name is not None and not name.strip():
            raise WorkflowValidationError("User name cannot be empty")
        try:
            with session_scope(self._db_session) as db:
                model = db.get(UserModel, user_id)
                if model is None:
                    raise NotFoundError(f"User with ID '{user_id}' not found", resource="user", resource_id=user_id)
                if name is not None:
                    model.name = name.strip()
                if role is not None:
                    model.role = UserRole(role).value
                db.commit()
                user = _to_user(model)
        except SQLAlchemyError as e:
            logger.error(f"Database error while updating user: {str(e)}")
            raise StorageError(f"Failed to update user: {str(e)}", operation="update", table="users")

        logger.info(f"Updated user {user_id}")
        return user

    def delete_user(self, user_id: str, acting_user_id: Optional[str] = None) -> bool:
        """Remove a user; nobody may delete themselves."""
        if acting_user_id is not None and acting_user_id == user_id:
            raise PermissionDeniedError("You cannot delete yourself.", user_id=acting_user_id)
        try:
            with session_scope(self._db_session) as db:
                model = db.get(UserModel, user_id)
                if model is None:
                    logger.warning(f"User with ID '{user_id}' not found for deletion")
                    return False
                db.delete(model)
                db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Database error while deleting user: {str(e)}")
            raise StorageError(f"Failed to delete user: {str(e)}", operation="delete", table="users")

        logger.info(f"Deleted user {user_id}")
        return True

    def require_admin(self, user_id: Optional[str]) -> User:
        """Return the acting user if they are an Admin."""
        user = self.resolve_user(user_id)
        if user is None or user.role != UserRole.ADMIN:
            raise PermissionDeniedError("Only admins may manage users", user_id=user_id)
        return user
