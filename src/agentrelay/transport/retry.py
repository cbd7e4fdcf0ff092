"""Retry policy for sending messages to a session.

Hides how a failed send is classified as a transient timeout and how long
the client waits before trying again.
"""

from dataclasses import dataclass

from .errors import ErrorCode, ProxyError

# Codes that identify a timeout without looking at the message text.
TIMEOUT_CODES = frozenset({ErrorCode.TIMEOUT_ERROR.value, "TIMEOUT"})

# Legacy wording used by the agent service when the terminal it drives has
# not settled yet. Matching on text couples us to server phrasing; it is only
# consulted when the server did not send a timeout code.
TIMEOUT_MESSAGE_MARKERS = ("timeout", "screen to stabilize", "wait for condition")

SEND_TIMEOUT_MESSAGE = (
    "Message delivery timed out. The agent may still be busy updating its screen; "
    "wait a moment and try again."
)


def is_timeout_error(error: ProxyError) -> bool:
    """Check whether a send failure is a classified timeout."""
    if error.code in TIMEOUT_CODES:
        return True
    text = error.message.lower()
    return any(marker in text for marker in TIMEOUT_MESSAGE_MARKERS)


@dataclass(frozen=True)
class SendRetryPolicy:
    """Linear retry schedule for classified send timeouts.

    Attributes:
        max_retries: Additional attempts after the first one
        base_delay: Delay before retry n is n * base_delay seconds
    """

    max_retries: int = 2
    base_delay: float = 2.0

    def delay_for(self, retry_index: int) -> float:
        """Seconds to wait before the given retry (0-based)."""
        return (retry_index + 1) * self.base_delay

    def delays(self) -> list[float]:
        """All delays of a send that times out on every attempt."""
        return [self.delay_for(i) for i in range(self.max_retries)]

    def worst_case_latency(self, request_timeout: float, auth_fallback: bool = True) -> float:
        """Upper bound in seconds before a send gives up.

        Every attempt may spend one request timeout per authentication
        scheme tried, followed by the retry delays in between.

        Args:
            request_timeout: Per-request timeout in seconds
            auth_fallback: Whether an API key is configured, so that one
                attempt may issue two requests

        Returns:
            Total worst-case latency in seconds
        """
        requests_per_attempt = 2 if auth_fallback else 1
        attempts = self.max_retries + 1
        return attempts * requests_per_attempt * request_timeout + sum(self.delays())
