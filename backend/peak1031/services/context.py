from dataclasses import dataclass


@dataclass(frozen=True)
class RequestContext:
    """Client details recorded alongside audit entries."""

    ip_address: str | None = None
    user_agent: str | None = None


EMPTY_CONTEXT = RequestContext()
