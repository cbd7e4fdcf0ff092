from .base import SessionTransport
from .errors import Err, ErrorCode, Ok, ProxyError, RequestOutcome, normalize_exception, normalize_response
from .events import EventSubscription, SSEDecoder, decode_event_frame
from .factory import create_transport
from .http import HttpSessionTransport
from .models import (
    AgentStatus,
    CreateSessionRequest,
    ErrorEnvelope,
    SendSessionMessageRequest,
    Session,
    SessionEvent,
    SessionEventsOptions,
    SessionListParams,
    SessionListResponse,
    SessionMessage,
    SessionMessageListParams,
    SessionMessageListResponse,
)
from .retry import SendRetryPolicy, is_timeout_error

__all__ = [
    "SessionTransport",
    "HttpSessionTransport",
    "create_transport",
    "ProxyError",
    "ErrorCode",
    "Ok",
    "Err",
    "RequestOutcome",
    "normalize_response",
    "normalize_exception",
    "EventSubscription",
    "SSEDecoder",
    "decode_event_frame",
    "SendRetryPolicy",
    "is_timeout_error",
    "AgentStatus",
    "CreateSessionRequest",
    "ErrorEnvelope",
    "SendSessionMessageRequest",
    "Session",
    "SessionEvent",
    "SessionEventsOptions",
    "SessionListParams",
    "SessionListResponse",
    "SessionMessage",
    "SessionMessageListParams",
    "SessionMessageListResponse",
]
