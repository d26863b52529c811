"""
Optimistic mutations for list views.

A mutation is applied to the in-memory view first (PENDING), then committed
to the authoritative store. If the commit fails, the view is replaced with
an authoritative reload (ROLLED_BACK) and the error is kept on the mutation
for the caller to report. Nothing is retried.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Generic, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class MutationState(str, Enum):
    PENDING = "pending"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class OptimisticMutation(Generic[T]):
    """
    Example:
        mutation = OptimisticMutation(tasks, reload=lambda: session.list_records("tasks"))
        mutation.run(
            apply=lambda view: [t for t in view if t.id != task_id],
            commit=lambda: session.delete_record("tasks", task_id),
        )
        render(mutation.view)
    """

    def __init__(self, view: List[T], reload: Callable[[], List[T]], refresh_on_commit: bool = False):
        self.view: List[T] = list(view)
        self.reload = reload
        self.refresh_on_commit = refresh_on_commit
        self.state: Optional[MutationState] = None
        self.result: Any = None
        self.error: Optional[Exception] = None

    def run(self, apply: Callable[[List[T]], List[T]], commit: Callable[[], Any]) -> MutationState:
        self.view = apply(list(self.view))
        self.state = MutationState.PENDING

        try:
            self.result = commit()
        except Exception as e:
            logger.warning("Optimistic update rolled back: %s", e)
            self.error = e
            self.view = list(self.reload())
            self.state = MutationState.ROLLED_BACK
            return self.state

        if self.refresh_on_commit:
            self.view = list(self.reload())
        self.state = MutationState.COMMITTED
        return self.state
