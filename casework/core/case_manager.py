"""Case Manager: stores cases and drives them through their app's workflow."""

import threading
from datetime import datetime, timezone
from typing import Any, Iterable, List, Mapping, Optional
from pydantic import ValidationError
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from ..models.case import Case, CasePriority, WorkflowEvent
from ..models.defaults import DEMO_CASES
from ..storage.database import session_scope
from ..storage.models import AppModel, CaseModel
from .app_manager import AppManager
from .exceptions import NotFoundError, StorageError, WorkflowValidationError
from .identity import UserDirectory
from .logging import get_logger, logging_context
from .progression import CaseProgressionEngine, Clock, open_case, utcnow

logger = get_logger(__name__)


def _as_utc(value: datetime) -> datetime:
    # SQLite drops the offset on the way back
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def _to_case(model: CaseModel) -> Case:
    return Case(
        id=model.id,
        app_id=model.app_id,
        title=model.title,
        description=model.description or "",
        status=model.status,
        priority=model.priority,
        assignee_id=model.assignee_id,
        client=model.client or "",
        tags=list(model.tags or []),
        created_at=_as_utc(model.created_at),
        current_workflow_step_id=model.current_workflow_step_id,
        workflow_history=[WorkflowEvent.model_validate(event) for event in (model.workflow_history or [])],
        form_data=dict(model.form_data or {}),
    )


def _write_case(model: CaseModel, case: Case) -> None:
    data = case.model_dump(mode="json")
    model.app_id = case.app_id
    model.title = case.title
    model.description = case.description
    model.status = case.status.value
    model.priority = case.priority.value
    model.assignee_id = case.assignee_id
    model.client = case.client
    model.tags = data["tags"]
    model.created_at = case.created_at
    model.current_workflow_step_id = case.current_workflow_step_id
    model.workflow_history = data["workflow_history"]
    model.form_data = data["form_data"]


class CaseManager:
    """Creates, loads and saves cases, and advances them through the progression engine."""

    def __init__(self, app_manager: AppManager, user_directory: UserDirectory,
                 db_session: Optional[Session] = None, strict_transitions: bool = False,
                 clock: Clock = utcnow):
        self._app_manager = app_manager
        self._users = user_directory
        self._db_session = db_session
        self._clock = clock
        # Serializes read-modify-write of a case within this process
        self._lock = threading.RLock()
        self.engine = CaseProgressionEngine(
            resolve_user=user_directory.resolve_user,
            on_case_change=self.save_case,
            strict_transitions=strict_transitions,
            clock=clock,
        )

    def create_case(self, app_id: str, title: str, description: str = "",
                    priority: CasePriority = CasePriority.MEDIUM, assignee_id: Optional[str] = None,
                    client: str = "", tags: Iterable[str] = ()) -> Case:
        """
        Create a case at the app's Start node with status New and no history.

        Raises:
            NotFoundError: If the app does not exist
            WorkflowValidationError: If the case data is invalid or the workflow has no Start node
        """
        document = self._app_manager.get_workflow(app_id)
        if assignee_id and self._users.resolve_user(assignee_id) is None:
            raise WorkflowValidationError(f"Unknown assignee '{assignee_id}'")

        try:
            case = open_case(
                document,
                app_id,
                title,
                description=description,
                priority=priority,
                assignee_id=assignee_id,
                client=client,
                tags=tags,
                now=self._clock(),
            )
        except ValidationError as e:
            messages = [err["msg"] for err in e.errors()]
            raise WorkflowValidationError(f"Invalid case: {'; '.join(messages)}", validation_errors=messages)

        self.save_case(case)
        logger.info(f"Created case {case.id} in app {app_id} at step {case.current_workflow_step_id}")
        return case

    def get_case(self, case_id: str) -> Case:
        try:
            with session_scope(self._db_session) as db:
                model = db.get(CaseModel, case_id)
                if model is None:
                    raise NotFoundError(f"Case with ID '{case_id}' not found", resource="case", resource_id=case_id)
                return _to_case(model)
        except SQLAlchemyError as e:
            logger.error(f"Database error while retrieving case: {str(e)}")
            raise StorageError(f"Failed to retrieve case: {str(e)}", operation="get", table="cases")

    def list_cases(self, app_id: Optional[str] = None) -> List[Case]:
        """Cases, newest first, optionally limited to one app."""
        try:
            with session_scope(self._db_session) as db:
                query = db.query(CaseModel)
                if app_id is not None:
                    query = query.filter(CaseModel.app_id == app_id)
                models = query.order_by(CaseModel.created_at.desc(), CaseModel.id).all()
                cases = [_to_case(model) for model in models]
        except SQLAlchemyError as e:
            logger.error(f"Database error while listing cases: {str(e)}")
            raise StorageError(f"Failed to list cases: {str(e)}", operation="list", table="cases")

        logger.debug(f"Retrieved {len(cases)} cases")
        return cases

    def save_case(self, case: Case) -> None:
        """Insert or overwrite a case; the last writer wins."""
        try:
            with session_scope(self._db_session) as db:
                if db.get(AppModel, case.app_id) is None:
                    raise NotFoundError(f"App with ID '{case.app_id}' not found", resource="app",
                                        resource_id=case.app_id)
                model = db.get(CaseModel, case.id)
                if model is None:
                    model = CaseModel(id=case.id)
                    db.add(model)
                _write_case(model, case)
                db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Database error while saving case: {str(e)}")
            raise StorageError(f"Failed to save case: {str(e)}", operation="save", table="cases")

        logger.debug(f"Saved case {case.id} at step {case.current_workflow_step_id} ({case.status.value})")

    def complete_step(self, case_id: str, from_step_id: str, acting_user_id: str,
                      chosen_next_step_id: Optional[str] = None,
                      form_values: Optional[Mapping[str, Any]] = None) -> Case:
        """Complete the current step of a stored case; see :meth:`CaseProgressionEngine.complete_step`."""
        with self._lock, logging_context(case_id=case_id, user_id=acting_user_id):
            case = self.get_case(case_id)
            document = self._app_manager.get_workflow(case.app_id)
            return self.engine.complete_step(
                case,
                document,
                from_step_id,
                acting_user_id,
                chosen_next_step_id=chosen_next_step_id,
                form_values=form_values,
            )

    def set_step(self, case_id: str, new_step_id: str) -> Case:
        """Place a stored case directly on a step."""
        with self._lock, logging_context(case_id=case_id):
            case = self.get_case(case_id)
            document = self._app_manager.get_workflow(case.app_id)
            return self.engine.set_step(case, document, new_step_id)

    def seed_demo_cases(self, cases: Iterable[Case] = DEMO_CASES) -> int:
        """Store the demo cases whose id is free and whose app exists; return how many were added."""
        app_ids = {app.id for app in self._app_manager.list_apps()}
        added = 0
        for case in cases:
            if case.app_id not in app_ids:
                logger.warning(f"Skipping demo case {case.id}: app {case.app_id} does not exist")
                continue
            try:
                self.get_case(case.id)
            except NotFoundError:
                self.save_case(case)
                added += 1
        return added
