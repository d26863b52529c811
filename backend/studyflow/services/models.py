"""
Data models for tasks, notes, study subjects and AI chat messages.

Uses Pydantic for validation and serialization. Each collection has one
fields model shared by its guest copy (persisted locally, camelCase JSON)
and its account copy (persisted in the remote store).
"""

import time
from datetime import datetime
from enum import Enum
from typing import Dict, Optional, Type

from pydantic import BaseModel, ConfigDict, Field


class Collection(str, Enum):
    """The four user data collections."""
    TASKS = "tasks"
    NOTES = "notes"
    SUBJECTS = "subjects"
    AI_CHATS = "ai_chats"


# Order in which guest data is replayed into an account
MIGRATION_ORDER = (
    Collection.TASKS,
    Collection.NOTES,
    Collection.SUBJECTS,
    Collection.AI_CHATS,
)


class NoteColor(str, Enum):
    YELLOW = "yellow"
    BLUE = "blue"
    GREEN = "green"
    PURPLE = "purple"
    PINK = "pink"


class ChatRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class Timestamp(BaseModel):
    """Creation stamp as persisted locally: {"seconds": <epoch float>}"""
    seconds: float

    @classmethod
    def now(cls) -> "Timestamp":
        return cls(seconds=time.time())


# ============================================================================
# FIELDS (what the user authored)
# ============================================================================


class TaskFields(BaseModel):
    model_config = ConfigDict(extra="ignore")

    text: str = Field(..., min_length=1, max_length=2000)
    completed: bool = False


class NoteFields(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: str = Field(default="", max_length=500)
    content: str = ""
    color: NoteColor = NoteColor.YELLOW
    date: str = Field(default="", description="Display date, e.g. 'Oct 19'")


class SubjectFields(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str = Field(..., min_length=1, max_length=200)
    hours: float = Field(..., gt=0, description="Weekly study hours")


class AIChatFields(BaseModel):
    model_config = ConfigDict(extra="ignore")

    role: ChatRole
    text: str


# ============================================================================
# GUEST RECORDS (local store)
# ============================================================================


class GuestRecord(BaseModel):
    """Local identity and creation stamp carried by every guest record"""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    local_id: str = Field(..., alias="id")
    created_at: Timestamp = Field(..., alias="createdAt")

    def to_fields(self) -> dict:
        """Payload without the guest-local id and timestamp."""
        return self.model_dump(mode="json", exclude={"local_id", "created_at"})

    def to_storage(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class GuestTask(GuestRecord, TaskFields):
    pass


class GuestNote(GuestRecord, NoteFields):
    pass


class GuestSubject(GuestRecord, SubjectFields):
    pass


class GuestAIChatMessage(GuestRecord, AIChatFields):
    pass


class GuestIdentity(BaseModel):
    guest_id: str
    is_guest: bool


class GuestStats(BaseModel):
    """Per-collection counts of the local guest store"""
    tasks: int = 0
    notes: int = 0
    subjects: int = 0
    ai_chats: int = 0
    unreadable: int = Field(default=0, description="Stored items that failed to decode")
    is_guest: bool = False

    @property
    def total(self) -> int:
        return self.tasks + self.notes + self.subjects + self.ai_chats

    @property
    def is_empty(self) -> bool:
        return self.total == 0 and self.unreadable == 0


# ============================================================================
# ACCOUNT RECORDS (remote store)
# ============================================================================


class AccountRecord(BaseModel):
    id: str
    user_id: str = Field(..., description="Authenticated account ID")
    created_at: datetime


class Task(AccountRecord, TaskFields):
    pass


class Note(AccountRecord, NoteFields):
    pass


class Subject(AccountRecord, SubjectFields):
    pass


class AIChatMessage(AccountRecord, AIChatFields):
    pass


# ============================================================================
# MIGRATION
# ============================================================================


class CollectionCounts(BaseModel):
    tasks: int = 0
    notes: int = 0
    subjects: int = 0
    ai_chats: int = 0


class MigrationResult(BaseModel):
    """Outcome of one guest → account migration attempt"""
    success: bool
    migrated_count: int = 0
    per_collection_counts: CollectionCounts = Field(default_factory=CollectionCounts)
    error: Optional[str] = None


FIELDS_MODELS: Dict[Collection, Type[BaseModel]] = {
    Collection.TASKS: TaskFields,
    Collection.NOTES: NoteFields,
    Collection.SUBJECTS: SubjectFields,
    Collection.AI_CHATS: AIChatFields,
}

GUEST_MODELS: Dict[Collection, Type[GuestRecord]] = {
    Collection.TASKS: GuestTask,
    Collection.NOTES: GuestNote,
    Collection.SUBJECTS: GuestSubject,
    Collection.AI_CHATS: GuestAIChatMessage,
}

ACCOUNT_MODELS: Dict[Collection, Type[AccountRecord]] = {
    Collection.TASKS: Task,
    Collection.NOTES: Note,
    Collection.SUBJECTS: Subject,
    Collection.AI_CHATS: AIChatMessage,
}
