"""SQLAlchemy database models for apps, cases and users."""

from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime, Text, JSON, ForeignKey
from sqlalchemy.orm import relationship
from .database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class AppModel(Base):
    """Database model for tenant apps and their workflow documents."""
    __tablename__ = "apps"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    icon = Column(String, default="")
    theme_color = Column(String, default="blue")
    workflow = Column(JSON, nullable=False)  # Serialized WorkflowDocument
    created_at = Column(DateTime, default=_utcnow)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    # Deleting an app deletes its cases
    cases = relationship("CaseModel", back_populates="app", cascade="all, delete-orphan")


class CaseModel(Base):
    """Database model for cases."""
    __tablename__ = "cases"

    id = Column(String, primary_key=True)
    app_id = Column(String, ForeignKey("apps.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, default="")
    status = Column(String, nullable=False)
    priority = Column(String, nullable=False)
    assignee_id = Column(String)
    client = Column(String, default="")
    tags = Column(JSON, default=list)
    created_at = Column(DateTime, nullable=False)
    current_workflow_step_id = Column(String)
    workflow_history = Column(JSON, default=list)  # List of serialized WorkflowEvent
    form_data = Column(JSON, default=dict)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    app = relationship("AppModel", back_populates="cases")


class UserModel(Base):
    """Database model for users in the identity directory."""
    __tablename__ = "users"

    id = Column(String, primary_key=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False)
    role = Column(String, nullable=False)
    avatar_url = Column(String)
