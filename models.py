from __future__ import annotations

from sqlalchemy import Boolean, Column, Index, Integer, String, Text

from db import Base


class Fresher(Base):
    """New hire record. Owned by the onboarding CRUD layer; read-only here."""

    __tablename__ = "freshers"

    fresher_id = Column(String, primary_key=True)
    first_name = Column(Text, nullable=False, default="")
    last_name = Column(Text, nullable=False, default="")
    email = Column(String, nullable=False, default="", index=True)
    designation = Column(Text, nullable=False, default="")
    department = Column(Text, nullable=False, default="")
    created_at = Column(Text, nullable=False, default="")


class LearningCatalogModule(Base):
    __tablename__ = "learning_catalog_modules"
    __table_args__ = (Index("ix_learning_catalog_key_order", "catalog_key", "sort_order"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    catalog_key = Column(String, nullable=False, default="other", index=True)
    title = Column(Text, nullable=False, default="")
    description = Column(Text, nullable=False, default="")
    link = Column(Text, nullable=False, default="")
    duration_minutes = Column(Integer, nullable=False, default=0)
    sort_order = Column(Integer, nullable=False, default=0)


class LearningAssignment(Base):
    __tablename__ = "learning_assignments"

    # One assignment per fresher.
    fresher_id = Column(String, primary_key=True)
    department = Column(Text, nullable=False, default="")
    catalog_key = Column(String, nullable=False, default="", index=True)
    assigned_at = Column(Text, nullable=False, default="", index=True)
    duration_days = Column(Integer, nullable=False, default=0)
    deadline = Column(Text, nullable=True, index=True)
    # Idempotency guards for the reminder and expiry jobs.
    last_reminder_sent = Column(Text, nullable=True)
    deadline_notification_sent = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    updated_at = Column(Text, nullable=False, default="")


class LearningProgressItem(Base):
    __tablename__ = "learning_progress_items"

    # item_id is a per-assignment sequence, not a global one.
    fresher_id = Column(String, primary_key=True)
    item_id = Column(Integer, primary_key=True, autoincrement=False)
    title = Column(Text, nullable=False, default="")
    description = Column(Text, nullable=False, default="")
    link = Column(Text, nullable=False, default="")
    duration_minutes = Column(Integer, nullable=False, default=0)
    is_completed = Column(Boolean, nullable=False, default=False, index=True)
    completed_at = Column(Text, nullable=True)
    notes = Column(Text, nullable=False, default="")
    is_custom = Column(Boolean, nullable=False, default=False)
    created_at = Column(Text, nullable=False, default="")
    updated_at = Column(Text, nullable=False, default="")


class RosterMember(Base):
    """L&D reviewer/administrator who receives milestone and expiry reports."""

    __tablename__ = "learning_roster"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String, nullable=False, unique=True, index=True)
    first_name = Column(Text, nullable=False, default="")
    last_name = Column(Text, nullable=False, default="")
    role = Column(String, nullable=False, default="L&D Coordinator")
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    notification_preferences = Column(Text, nullable=False, default="")  # JSON: {category: bool}
    created_at = Column(Text, nullable=False, default="")
    updated_at = Column(Text, nullable=False, default="")
