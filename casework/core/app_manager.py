"""App Manager for tenant apps and their workflow documents."""

import uuid
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Tuple
from pydantic import ValidationError
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from ..models.case import AppDefinition
from ..models.defaults import DEMO_APPS, default_workflow
from ..models.workflow import ValidationResult, WorkflowDocument
from ..storage.database import session_scope
from ..storage.models import AppModel
from .exceptions import NotFoundError, StorageError, WorkflowValidationError
from .graph_editor import WorkflowEditor, validate_document
from .logging import get_logger

logger = get_logger(__name__)


def _to_app(model: AppModel) -> AppDefinition:
    return AppDefinition(
        id=model.id,
        name=model.name,
        icon=model.icon or "",
        theme_color=model.theme_color or "blue",
        workflow=WorkflowDocument.model_validate(model.workflow),
    )


class AppManager:
    """Manages apps, stores their workflow documents and hands out editors."""

    def __init__(self, db_session: Optional[Session] = None, allow_self_loops: bool = False):
        """Initialize AppManager with optional database session."""
        self._db_session = db_session
        self.allow_self_loops = allow_self_loops

    def _generate_app_id(self) -> str:
        return f"app-{uuid.uuid4().hex[:8]}"

    def _require_model(self, db: Session, app_id: str) -> AppModel:
        model = db.get(AppModel, app_id)
        if model is None:
            raise NotFoundError(f"App with ID '{app_id}' not found", resource="app", resource_id=app_id)
        return model

    def create_app(self, name: str, icon: str = "", theme_color: str = "blue",
                   workflow: Optional[WorkflowDocument] = None, app_id: Optional[str] = None) -> AppDefinition:
        """
        Create a new app. Without an explicit workflow it starts from the default document.

        Raises:
            WorkflowValidationError: If the app or its workflow is invalid
            StorageError: If storage operation fails
        """
        try:
            app = AppDefinition(
                id=app_id or self._generate_app_id(),
                name=name,
                icon=icon,
                theme_color=theme_color,
                workflow=workflow if workflow is not None else default_workflow(),
            )
        except ValidationError as e:
            messages = [err["msg"] for err in e.errors()]
            raise WorkflowValidationError(f"Invalid app: {'; '.join(messages)}", validation_errors=messages)

        self._check_document(app.workflow)
        logger.info(f"Creating new app: {app.name}")

        try:
            with session_scope(self._db_session) as db:
                if db.get(AppModel, app.id) is not None:
                    raise WorkflowValidationError(f"App with ID '{app.id}' already exists")
                now = datetime.now(timezone.utc)
                db.add(AppModel(
                    id=app.id,
                    name=app.name,
                    icon=app.icon,
                    theme_color=app.theme_color,
                    workflow=app.workflow.model_dump(mode="json"),
                    created_at=now,
                    updated_at=now,
                ))
                db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Database error while creating app: {str(e)}")
            raise StorageError(f"Failed to store app: {str(e)}", operation="create", table="apps")

        logger.info(f"Successfully created app '{app.name}' with ID: {app.id}")
        return app

    def get_app(self, app_id: str) -> AppDefinition:
        """
        Retrieve an app by its ID.

        Raises:
            NotFoundError: If the app does not exist
            StorageError: If storage operation fails
        """
        logger.debug(f"Retrieving app with ID: {app_id}")
        try:
            with session_scope(self._db_session) as db:
                return _to_app(self._require_model(db, app_id))
        except SQLAlchemyError as e:
            logger.error(f"Database error while retrieving app: {str(e)}")
            raise StorageError(f"Failed to retrieve app: {str(e)}", operation="get", table="apps")

    def list_apps(self) -> List[AppDefinition]:
        """List all apps, oldest first."""
        try:
            with session_scope(self._db_session) as db:
                models = db.query(AppModel).order_by(AppModel.created_at, AppModel.id).all()
                apps = [_to_app(model) for model in models]
        except SQLAlchemyError as e:
            logger.error(f"Database error while listing apps: {str(e)}")
            raise StorageError(f"Failed to list apps: {str(e)}", operation="list", table="apps")

        logger.debug(f"Retrieved {len(apps)} apps")
        return apps

    def update_app(self, app_id: str, name: Optional[str] = None, icon: Optional[str] = None,
                   theme_color: Optional[str] = None) -> AppDefinition:
        """Change an app's name, icon or theme color."""
        if name is not None and not name.strip():
            raise WorkflowValidationError("App name cannot be empty")
        try:
            with session_scope(self._db_session) as db:
                model = self._require_model(db, app_id)
                if name is not None:
                    model.name = name.strip()
                if icon is not None:
                    model.icon = icon
                if theme_color is not None:
                    model.theme_color = theme_color
                db.commit()
                app = _to_app(model)
        except SQLAlchemyError as e:
            logger.error(f"Database error while updating app: {str(e)}")
            raise StorageError(f"Failed to update app: {str(e)}", operation="update", table="apps")

        logger.info(f"Updated app {app_id}")
        return app

    def delete_app(self, app_id: str) -> bool:
        """
        Delete an app together with all of its cases.

        Returns:
            bool: True if the app was deleted, False if not found
        """
        logger.info(f"Deleting app with ID: {app_id}")
        try:
            with session_scope(self._db_session) as db:
                model = db.get(AppModel, app_id)
                if model is None:
                    logger.warning(f"App with ID '{app_id}' not found for deletion")
                    return False
                case_count = len(model.cases)
                db.delete(model)
                db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Database error while deleting app: {str(e)}")
            raise StorageError(f"Failed to delete app: {str(e)}", operation="delete", table="apps")

        logger.info(f"Successfully deleted app {app_id} and {case_count} cases")
        return True

    def get_workflow(self, app_id: str) -> WorkflowDocument:
        return self.get_app(app_id).workflow

    def save_workflow(self, app_id: str, document: WorkflowDocument) -> None:
        """Persist a new version of an app's workflow document."""
        try:
            with session_scope(self._db_session) as db:
                model = self._require_model(db, app_id)
                model.workflow = document.model_dump(mode="json")
                db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Database error while saving workflow: {str(e)}")
            raise StorageError(f"Failed to save workflow: {str(e)}", operation="update", table="apps")

        logger.debug(f"Saved workflow for app {app_id}: {len(document.nodes)} nodes, {len(document.edges)} edges")

    def replace_workflow(self, app_id: str, document: WorkflowDocument) -> ValidationResult:
        """Replace an app's workflow with a complete document after validating it."""
        result = self._check_document(document)
        self.save_workflow(app_id, document)
        logger.info(f"Replaced workflow for app {app_id}")
        return result

    def validate_workflow(self, app_id: str, known_user_ids: Optional[Iterable[str]] = None) -> ValidationResult:
        return validate_document(self.get_workflow(app_id), known_user_ids=known_user_ids)

    def editor_for(self, app_id: str) -> WorkflowEditor:
        """An editor over the app's current workflow that saves every change."""
        document = self.get_workflow(app_id)
        return WorkflowEditor(
            document,
            on_document_change=lambda new_document: self.save_workflow(app_id, new_document),
            allow_self_loops=self.allow_self_loops,
        )

    def seed_demo_apps(self, apps: Iterable[Tuple[str, str, str, str]] = DEMO_APPS) -> int:
        """Create the demo apps that do not exist yet and return how many were added."""
        added = 0
        for app_id, name, icon, theme_color in apps:
            try:
                self.get_app(app_id)
            except NotFoundError:
                self.create_app(name, icon=icon, theme_color=theme_color, app_id=app_id)
                added += 1
        return added

    def _check_document(self, document: WorkflowDocument) -> ValidationResult:
        result = validate_document(document)
        if not result.is_valid:
            error_msg = f"Workflow validation failed: {'; '.join(result.errors)}"
            logger.error(error_msg)
            raise WorkflowValidationError(error_msg, validation_errors=result.errors)
        if result.warnings:
            logger.warning(f"Workflow validation warnings: {'; '.join(result.warnings)}")
        return result
