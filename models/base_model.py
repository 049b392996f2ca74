#!/usr/bin/env python3
"""
Shared SQLAlchemy base and mixins for the ExpenseIt API.

- UUID primary key (String(36)) with defaults
- created_at / updated_at timestamps (UTC)

Persistence goes through an explicitly constructed DBStorage handle
(models/db_storage.py); models never reach for a global session.
"""

from __future__ import annotations

import uuid

from sqlalchemy import Column, String, DateTime
from sqlalchemy.orm import declarative_base

from utils.timeutils import utcnow

# Declarative base for all models
Base = declarative_base()


def _uuid_str() -> str:
    """Return a canonical UUIDv4 string (36 chars, with hyphens)."""
    return str(uuid.uuid4())


class BaseModel:
    """
    Base mixin for all persistent models: id, created_at, updated_at.
    Timestamps are set from Python so SQLite and PostgreSQL agree on UTC.
    """

    id = Column(String(36), primary_key=True, default=_uuid_str, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def __init__(self, *args, **kwargs):
        """
        Allow attribute initialization via kwargs.
        If you pass created_at/updated_at explicitly (e.g., in tests), they will be set.
        """
        for key, value in kwargs.items():
            if key != "__class__":
                setattr(self, key, value)
        # Ensure an id exists if user passed none
        if getattr(self, "id", None) is None:
            self.id = _uuid_str()

