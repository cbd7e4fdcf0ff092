from typing import Any

from ..config import ClientConfig
from .base import SessionTransport
from .http import HttpSessionTransport


def create_transport(
    kind: str = "http",
    config: ClientConfig | None = None,
    **kwargs: Any
) -> SessionTransport:
    """Create a session transport instance.

    This factory function hides the instantiation logic for different transports.

    Args:
        kind: Transport type (currently only 'http')
        config: Client configuration (defaults to ClientConfig())
        **kwargs: Transport-specific options
            For http:
                - client: httpx.AsyncClient | None
                - retry_policy: SendRetryPolicy | None
                - sleep: coroutine function used between send retries

    Returns:
        Initialized transport instance

    Raises:
        ValueError: If the transport type is not supported

    Examples:
        >>> transport = create_transport(
        ...     "http",
        ...     ClientConfig(base_url="http://localhost:8080", api_key="secret")
        ... )
    """
    if kind.lower() == "http":
        return HttpSessionTransport(config or ClientConfig(), **kwargs)

    raise ValueError(
        f"Unsupported transport: {kind}. "
        f"Supported transports: 'http'"
    )
