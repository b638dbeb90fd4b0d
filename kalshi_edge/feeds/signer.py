"""RSA-PSS request signing for the Kalshi trading API.

Every authenticated call carries three headers generated fresh per
request: the access key id, the request timestamp in milliseconds, and a
base64 signature over ``{timestamp}{METHOD}{path}`` (query string
stripped). PSS is randomized, so two signatures over the same message
differ byte-for-byte while both verify against the public key.
"""

from __future__ import annotations

import base64
import time
from functools import lru_cache
from typing import Optional

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from kalshi_edge.exceptions import InvalidKey

PSS_SALT_LENGTH = 32

HEADER_KEY = "KALSHI-ACCESS-KEY"
HEADER_SIGNATURE = "KALSHI-ACCESS-SIGNATURE"
HEADER_TIMESTAMP = "KALSHI-ACCESS-TIMESTAMP"


def _pss() -> padding.PSS:
    return padding.PSS(
        mgf=padding.MGF1(hashes.SHA256()),
        salt_length=PSS_SALT_LENGTH,
    )


def canonical_message(method: str, path: str, timestamp_ms: int | str) -> str:
    clean_path = path.split("?", 1)[0]
    return f"{timestamp_ms}{method.upper()}{clean_path}"


@lru_cache(maxsize=8)
def load_private_key(private_key_pem: str) -> rsa.RSAPrivateKey:
    """Parse a PKCS#8 or PKCS#1 RSA private key PEM, cached per PEM text."""
    try:
        key = serialization.load_pem_private_key(
            private_key_pem.encode(), password=None
        )
    except (ValueError, TypeError) as exc:
        raise InvalidKey(f"cannot parse private key: {exc}") from exc
    if not isinstance(key, rsa.RSAPrivateKey):
        raise InvalidKey(f"expected an RSA private key, got {type(key).__name__}")
    return key


def sign(
    private_key_pem: str,
    method: str,
    path: str,
    timestamp_ms: int | str,
) -> str:
    """Return the base64 RSA-PSS signature for one request."""
    private_key = load_private_key(private_key_pem)
    message = canonical_message(method, path, timestamp_ms)
    signature = private_key.sign(message.encode(), _pss(), hashes.SHA256())
    return base64.b64encode(signature).decode()


def verify(
    public_key: rsa.RSAPublicKey,
    signature_b64: str,
    method: str,
    path: str,
    timestamp_ms: int | str,
) -> bool:
    """Check a signature produced by :func:`sign` against the public key."""
    from cryptography.exceptions import InvalidSignature

    message = canonical_message(method, path, timestamp_ms)
    try:
        public_key.verify(
            base64.b64decode(signature_b64),
            message.encode(),
            _pss(),
            hashes.SHA256(),
        )
    except InvalidSignature:
        return False
    return True


def auth_headers(
    key_id: str,
    private_key_pem: str,
    method: str,
    path: str,
    now_ms: Optional[int] = None,
) -> dict[str, str]:
    """Generate the signed auth headers for one request."""
    timestamp_ms = str(now_ms if now_ms is not None else int(time.time() * 1000))
    return {
        HEADER_KEY: key_id,
        HEADER_TIMESTAMP: timestamp_ms,
        HEADER_SIGNATURE: sign(private_key_pem, method, path, timestamp_ms),
    }
