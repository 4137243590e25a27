"""
Identity and task descriptors passed explicitly into persistence and notification
"""
from dataclasses import dataclass


@dataclass(frozen=True)
class UserContext:
    """The authenticated owner of a request"""
    user_id: str

    def __post_init__(self):
        if not isinstance(self.user_id, str) or not self.user_id.strip():
            raise ValueError("user_id is required")


@dataclass(frozen=True)
class CompletedTask:
    """A parsing run whose results are ready to be accepted"""
    task_id: str
    task_name: str = 'Unnamed Task'
    original_query: str = ''

    def __post_init__(self):
        if not isinstance(self.task_id, str) or not self.task_id.strip():
            raise ValueError("task_id is required")
