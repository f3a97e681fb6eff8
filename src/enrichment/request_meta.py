from dataclasses import dataclass
from typing import Mapping, Optional


def resolve_client_ip(headers: Mapping[str, str]) -> str:
    """
    Caller address as reported by the proxy in front of us:
    first x-forwarded-for entry, else x-real-ip, else "unknown".
    """
    forwarded_for = headers.get("x-forwarded-for")
    if forwarded_for:
        first = forwarded_for.split(",")[0].strip()
        if first:
            return first
    real_ip = headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()
    return "unknown"


@dataclass(frozen=True)
class RequestMeta:
    """What the gateway learns about a caller from the request itself."""
    client_ip: str
    user_agent: Optional[str]

    @classmethod
    def from_request(cls, request) -> "RequestMeta":
        headers = request.headers
        return cls(
            client_ip=resolve_client_ip(headers),
            user_agent=headers.get("user-agent") or None,
        )
