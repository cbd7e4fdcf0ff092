"""Wire models for the session service API.

The server may add fields at any time; models keep unknown fields so that
callers can still reach them.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

SessionState = Literal["creating", "starting", "active", "unhealthy", "stopped", "unknown"]
MessageRole = Literal["user", "assistant", "system", "tool_result", "agent"]


class Session(BaseModel):
    """A remote conversation context."""

    model_config = ConfigDict(extra="allow")

    session_id: str = Field(description="Unique session identifier")
    user_id: str | None = None
    status: str = Field(default="unknown", description="Lifecycle state of the session")
    started_at: str | None = None
    updated_at: str | None = None
    addr: str | None = None
    description: str | None = None
    environment: dict[str, str] | None = None
    metadata: dict[str, Any] | None = None
    tags: dict[str, str] | None = None


class CreateSessionRequest(BaseModel):
    """Body of POST /start."""

    environment: dict[str, str] | None = None
    metadata: dict[str, Any] = Field(default_factory=lambda: {"source": "agentrelay"})
    tags: dict[str, str] | None = None


class SessionListParams(BaseModel):
    """Query parameters for GET /search."""

    page: int | None = Field(default=None, ge=1)
    limit: int | None = Field(default=None, ge=1)
    status: str | None = None
    user_id: str | None = None


class SessionListResponse(BaseModel):
    """Paginated session list."""

    model_config = ConfigDict(extra="allow")

    sessions: list[Session] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 0


class SessionMessage(BaseModel):
    """A message stored in a session's conversation."""

    model_config = ConfigDict(extra="allow")

    id: str | int
    role: str = Field(description="Sender role: user, assistant, system, tool_result or agent")
    content: str = ""
    timestamp: str | None = None
    session_id: str | None = None
    metadata: dict[str, Any] | None = None


class SessionMessageListParams(BaseModel):
    """Query parameters for GET /{session_id}/messages."""

    page: int | None = Field(default=None, ge=1)
    limit: int | None = Field(default=None, ge=1)
    from_: str | None = Field(default=None, alias="from")
    to: str | None = None

    model_config = ConfigDict(populate_by_name=True)


class SessionMessageListResponse(BaseModel):
    """Messages of a session."""

    model_config = ConfigDict(extra="allow")

    messages: list[SessionMessage] = Field(default_factory=list)
    total: int | None = None
    page: int | None = None
    limit: int | None = None


class SendSessionMessageRequest(BaseModel):
    """Body of POST /{session_id}/message."""

    content: str
    type: Literal["user", "raw"] = "user"


class AgentStatus(BaseModel):
    """Result of GET /{session_id}/status."""

    model_config = ConfigDict(extra="allow")

    status: Literal["stable", "running", "error"]
    last_activity: str | None = None
    current_task: str | None = None


class SessionEvent(BaseModel):
    """A single frame pushed on the session event stream."""

    type: str = Field(description="message, status or error")
    data: Any = None
    timestamp: str | None = None


class SessionEventsOptions(BaseModel):
    """Reconnect policy advertised to callers of an event subscription.

    The transport never reconnects on its own; these values tell the
    caller how it is expected to behave after a stream-level error.
    """

    reconnect: bool = True
    reconnect_interval: float = Field(default=5.0, ge=0.0, description="Seconds before reconnecting")
    max_reconnect_attempts: int | None = Field(default=None, ge=0)


def params_to_query(params: BaseModel | None) -> dict[str, str]:
    """Render a params model as a query dict, dropping unset values."""
    if params is None:
        return {}
    return {
        key: str(value)
        for key, value in params.model_dump(by_alias=True, exclude_none=True).items()
    }


class ErrorDetail(BaseModel):
    """The ``error`` object of a failure response."""

    model_config = ConfigDict(extra="allow")

    code: Any = None
    message: Any = None
    details: Any = None
    timestamp: Any = None


class ErrorEnvelope(BaseModel):
    """Body of a non-2xx response: ``{"error": {...}}``."""

    error: ErrorDetail
