"""
HMAC request signing for outbound courier calls.

The courier verifies every request by recomputing an HMAC-SHA256 over a
canonical string built from the request timestamp, HTTP method, path and raw
body. The canonical form is::

    {timestamp}\\r\\n{method}\\r\\n{path}\\r\\n\\r\\n{body}

The empty line between path and body is an always-empty headers section; the
courier rejects signatures computed without it.

Everything in this module is pure: the caller supplies the timestamp and the
secret, so signatures are reproducible from fixed vectors.
"""

import hashlib
import hmac
from dataclasses import dataclass
from typing import Union

CRLF = "\r\n"

Secret = Union[str, bytes]


@dataclass(frozen=True)
class SignedRequest:
    """A single outbound request and the signature covering it.

    Built immediately before the call and discarded afterwards. Signing a
    different timestamp, method, path or body requires a new instance.
    """

    timestamp: str
    method: str
    path: str
    body: str
    signature: str


def _secret_bytes(secret: Secret) -> bytes:
    if isinstance(secret, bytes):
        return secret
    return secret.encode("utf-8")


def canonical_string(timestamp: str, method: str, path: str, body: str = "") -> str:
    """Build the exact string the courier signs.

    Args:
        timestamp: Caller-supplied timestamp, as sent on the wire
        method: Uppercase HTTP verb, e.g. ``POST``
        path: Request path with leading slash, no scheme or host
        body: Exact request body, empty for bodyless requests

    Returns:
        Canonical string to be fed to the HMAC
    """
    return f"{timestamp}{CRLF}{method}{CRLF}{path}{CRLF}{CRLF}{body}"


def sign(secret: Secret, timestamp: str, method: str, path: str, body: str = "") -> str:
    """Compute the lowercase hex HMAC-SHA256 signature for a request.

    Args:
        secret: Shared courier secret; ``str`` values are UTF-8 encoded
        timestamp: Caller-supplied timestamp
        method: Uppercase HTTP verb
        path: Request path
        body: Exact request body

    Returns:
        Lowercase hexadecimal digest
    """
    payload = canonical_string(timestamp, method, path, body).encode("utf-8")
    return hmac.new(_secret_bytes(secret), payload, hashlib.sha256).hexdigest()


def build_signed_request(
    secret: Secret,
    timestamp: str,
    method: str,
    path: str,
    body: str = "",
) -> SignedRequest:
    """Sign a request and bundle the inputs with the signature."""
    return SignedRequest(
        timestamp=timestamp,
        method=method,
        path=path,
        body=body,
        signature=sign(secret, timestamp, method, path, body),
    )


def verify(secret: Secret, signed_request: SignedRequest) -> bool:
    """Check a signed request against the secret in constant time."""
    expected = sign(
        secret,
        signed_request.timestamp,
        signed_request.method,
        signed_request.path,
        signed_request.body,
    )
    return hmac.compare_digest(expected, signed_request.signature)
