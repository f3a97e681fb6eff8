import hashlib
import hmac
from typing import Optional

from src.config import DEFAULT_IP_HASH_SECRET, settings


def anonymize_ip(address: str, secret: Optional[str] = None, length: Optional[int] = None) -> str:
    """
    Map a raw client address to a fixed-length opaque token.

    HMAC-SHA256 keyed with IP_HASH_SECRET: deterministic for one deployment
    (so unique visitors can be counted) but not reversible, and not
    correlatable across deployments that use different keys.
    """
    key = (secret if secret is not None else settings.IP_HASH_SECRET).encode("utf-8")
    size = length or settings.IP_TOKEN_LENGTH
    digest = hmac.new(key, address.encode("utf-8"), hashlib.sha256).hexdigest()
    return digest[:size]


def default_secret_in_use(secret: Optional[str] = None) -> bool:
    """True while IP_HASH_SECRET is still the public default key."""
    return (secret if secret is not None else settings.IP_HASH_SECRET) == DEFAULT_IP_HASH_SECRET

