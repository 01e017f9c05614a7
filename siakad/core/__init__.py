"""
Core Module - Shared domain records and identifiers.

Components:
- ids: Tagged entity ids (local vs remote) and the local id generator
- models: Task, Message, Course, ScheduleItem, User, KhsRecord
"""

from siakad.core.ids import EntityId, IdOrigin, LocalIdGenerator, new_local_id
from siakad.core.models import (
    ENTITY_TYPES,
    Course,
    EntityKind,
    KhsRecord,
    Message,
    ScheduleItem,
    Task,
    User,
)

__all__ = [
    # Ids
    "EntityId",
    "IdOrigin",
    "LocalIdGenerator",
    "new_local_id",
    # Records
    "ENTITY_TYPES",
    "EntityKind",
    "Task",
    "Message",
    "Course",
    "ScheduleItem",
    "User",
    "KhsRecord",
]
