"""Data models for the recent-message cache.

These models define what is remembered about previously sent text,
independent of the storage backend used.
"""

import time
from uuid import uuid4

from pydantic import BaseModel, Field


class RecentMessage(BaseModel):
    """A message text remembered for quick reuse."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    profile_id: str = Field(description="Profile the message belongs to")
    content: str = Field(description="Message text")
    timestamp: int = Field(
        default_factory=lambda: int(time.time() * 1000),
        description="Time saved, in epoch milliseconds"
    )
