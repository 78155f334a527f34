"""AWS Signature Version 4 request signing.

Builds the canonical request, derives the scoped signing key, and composes
the ``Authorization`` header for a request that is about to be forwarded to
a SigV4-protected endpoint (e.g. a Lambda Function URL).

The signed header set is fixed: ``host``, ``x-amz-date`` and, when a session
token is configured, ``x-amz-security-token``.

References:
    - https://docs.aws.amazon.com/IAM/latest/UserGuide/create-signed-request.html
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import re
import threading
import urllib.parse
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Callable

from sigv4_middleware.errors import ConfigurationError, MalformedAuthorizationHeader

if TYPE_CHECKING:
    from sigv4_middleware.config import SigningConfig

logger = logging.getLogger(__name__)

# Constants
ALGORITHM = "AWS4-HMAC-SHA256"
KEY_PREFIX = "AWS4"
SCOPE_TERMINATOR = "aws4_request"
EMPTY_SHA256 = "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
DATE_STAMP_FORMAT = "%Y%m%d"
AMZ_DATE_FORMAT = "%Y%m%dT%H%M%SZ"

# Outgoing header names, in the order they are applied to the request
HEADER_DATE = "X-Amz-Date"
HEADER_CONTENT_SHA256 = "X-Amz-Content-Sha256"
HEADER_SECURITY_TOKEN = "X-Amz-Security-Token"
HEADER_AUTHORIZATION = "Authorization"

# Example: AWS4-HMAC-SHA256 Credential=AKID/20240101/us-east-1/lambda/aws4_request,
#          SignedHeaders=host;x-amz-date, Signature=abcdef...
AUTH_HEADER_RE = re.compile(
    r"AWS4-HMAC-SHA256\s+"
    r"Credential=(?P<access_key>[^/,]+)/(?P<scope>[^,]+),\s*"
    r"SignedHeaders=(?P<signed_headers>[^,]+),\s*"
    r"Signature=(?P<signature>[0-9a-f]{64})$"
)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default clock: the current wall-clock time in UTC."""
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Credentials:
    """Long-lived signing credentials.

    The secret key and session token are kept out of ``repr()`` so that a
    logged signer or config object never leaks them.
    """

    access_key: str
    secret_key: str = field(repr=False)
    session_token: str | None = field(default=None, repr=False)


@dataclass(frozen=True)
class CanonicalRequest:
    """A built canonical request and the pieces it was assembled from."""

    text: str
    signed_headers: str
    payload_hash: str

    @property
    def hash(self) -> str:
        return hashlib.sha256(self.text.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class SignedRequest:
    """Every artifact of one signing pass.

    Attributes:
        amz_date: Full timestamp (YYYYMMDDTHHMMSSZ).
        date_stamp: Date part of the timestamp (YYYYMMDD).
        credential_scope: ``date/region/service/aws4_request``.
        canonical_request: The canonical request that was signed.
        string_to_sign: The string the signature was computed over.
        signature: Lowercase hex signature.
        authorization: The complete ``Authorization`` header value.
        headers: Outgoing headers to set on the request, in order.
    """

    amz_date: str
    date_stamp: str
    credential_scope: str
    canonical_request: CanonicalRequest
    string_to_sign: str
    signature: str
    authorization: str
    headers: dict[str, str]


# ---------------------------------------------------------------------------
# Canonical request construction
# ---------------------------------------------------------------------------


def format_timestamps(now: datetime) -> tuple[str, str]:
    """Derive the date stamp and amz-date from a single captured instant.

    Naive datetimes are taken to already be in UTC.

    Returns:
        A ``(date_stamp, amz_date)`` tuple.
    """
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return now.strftime(DATE_STAMP_FORMAT), now.strftime(AMZ_DATE_FORMAT)


def hash_payload(body: bytes | None) -> str:
    """Hex SHA-256 of the request body. A missing body hashes as empty."""
    return hashlib.sha256(body or b"").hexdigest()


def signed_header_pairs(
    host: str, amz_date: str, session_token: str | None = None
) -> list[tuple[str, str]]:
    """Return the ordered (name, value) pairs that get signed.

    Both the canonical headers block and the signed header list are built
    from this one sequence, so they always agree.
    """
    pairs = [("host", host), ("x-amz-date", amz_date)]
    if session_token is not None:
        pairs.append(("x-amz-security-token", session_token))
    return pairs


def build_canonical_request(
    method: str,
    path: str,
    query: str,
    host: str,
    amz_date: str,
    body: bytes | None = None,
    session_token: str | None = None,
    canonicalize: bool = False,
) -> CanonicalRequest:
    """Build the canonical request.

    Args:
        method: HTTP method.
        path: Absolute request path.
        query: Raw query string (without leading '?').
        host: The host value to sign (the signing target, not necessarily
            the host the request arrived on).
        amz_date: Timestamp (YYYYMMDDTHHMMSSZ).
        body: Raw request body bytes.
        session_token: Optional temporary-credential session token.
        canonicalize: If True, URI-encode the path and sort/encode the query
            as AWS requires. If False, path and query are used verbatim.

    Returns:
        The canonical request.
    """
    payload_hash = hash_payload(body)

    if canonicalize:
        canonical_uri = _uri_encode_path(path)
        canonical_query = _build_canonical_query_string(query)
    else:
        canonical_uri = path
        canonical_query = query

    pairs = signed_header_pairs(host, amz_date, session_token)
    canonical_headers = "".join(f"{name}:{value}\n" for name, value in pairs)
    signed_headers = ";".join(name for name, _ in pairs)

    text = "\n".join(
        [
            method,
            canonical_uri,
            canonical_query,
            canonical_headers,
            signed_headers,
            payload_hash,
        ]
    )
    return CanonicalRequest(text=text, signed_headers=signed_headers, payload_hash=payload_hash)


# ---------------------------------------------------------------------------
# Signing key derivation
# ---------------------------------------------------------------------------


def _hmac_sha256(key: bytes, data: str) -> bytes:
    return hmac.new(key, data.encode("utf-8"), hashlib.sha256).digest()


def derive_signing_key(secret_key: str, date_stamp: str, region: str, service: str) -> bytes:
    """Derive the SigV4 signing key via the HMAC-SHA256 chain.

    Args:
        secret_key: The secret access key.
        date_stamp: Date string (YYYYMMDD).
        region: AWS region.
        service: AWS service name.

    Returns:
        The 32-byte signing key.
    """
    k_date = _hmac_sha256((KEY_PREFIX + secret_key).encode("utf-8"), date_stamp)
    k_region = _hmac_sha256(k_date, region)
    k_service = _hmac_sha256(k_region, service)
    return _hmac_sha256(k_service, SCOPE_TERMINATOR)


class SigningKeyCache:
    """Memoizes derived signing keys for the current UTC day.

    Keys are cached by (access_key, date_stamp, region, service). When a
    newer date stamp is seen, every entry from earlier days is dropped.
    Requests carrying an older date stamp than the newest one seen are
    derived but not cached.
    """

    def __init__(self) -> None:
        self._keys: dict[tuple[str, str, str, str], bytes] = {}
        self._date_stamp = ""
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._keys)

    def get(
        self, credentials: Credentials, date_stamp: str, region: str, service: str
    ) -> bytes:
        """Return the cached signing key, deriving and storing it if needed."""
        cache_key = (credentials.access_key, date_stamp, region, service)
        with self._lock:
            if date_stamp > self._date_stamp:
                if self._keys:
                    logger.debug("Date rolled over to %s, dropping cached signing keys", date_stamp)
                self._keys.clear()
                self._date_stamp = date_stamp
            cached = self._keys.get(cache_key)
        if cached is not None:
            return cached

        signing_key = derive_signing_key(credentials.secret_key, date_stamp, region, service)

        with self._lock:
            if date_stamp == self._date_stamp:
                self._keys[cache_key] = signing_key
        return signing_key


# ---------------------------------------------------------------------------
# String to sign, signature and Authorization header
# ---------------------------------------------------------------------------


def credential_scope(date_stamp: str, region: str, service: str) -> str:
    return f"{date_stamp}/{region}/{service}/{SCOPE_TERMINATOR}"


def build_string_to_sign(amz_date: str, scope: str, canonical_request: CanonicalRequest) -> str:
    """Build the string to sign.

    Args:
        amz_date: Timestamp (YYYYMMDDTHHMMSSZ).
        scope: Credential scope (YYYYMMDD/region/service/aws4_request).
        canonical_request: The built canonical request.

    Returns:
        The string to sign.
    """
    return f"{ALGORITHM}\n{amz_date}\n{scope}\n{canonical_request.hash}"


def compute_signature(signing_key: bytes, string_to_sign: str) -> str:
    """Compute the final HMAC-SHA256 signature as 64 lowercase hex chars."""
    return hmac.new(signing_key, string_to_sign.encode("utf-8"), hashlib.sha256).hexdigest()


def build_authorization_header(
    access_key: str, scope: str, signed_headers: str, signature: str
) -> str:
    return (
        f"{ALGORITHM} Credential={access_key}/{scope}, "
        f"SignedHeaders={signed_headers}, Signature={signature}"
    )


def parse_authorization_header(header: str) -> dict[str, str]:
    """Parse a SigV4 Authorization header into its components.

    Args:
        header: The raw Authorization header value.

    Returns:
        A dict with keys: access_key, scope, signed_headers, signature.

    Raises:
        MalformedAuthorizationHeader: If the header format is invalid.
    """
    match = AUTH_HEADER_RE.match(header)
    if not match:
        raise MalformedAuthorizationHeader()
    return match.groupdict()


# ---------------------------------------------------------------------------
# Signer
# ---------------------------------------------------------------------------


class SigV4Signer:
    """Signs requests with one fixed set of credentials and scope.

    The signer holds only immutable configuration and is safe to share
    across concurrent requests. All per-request values live on the stack of
    ``sign()``.

    Attributes:
        credentials: The signing credentials.
        service: AWS service name (e.g. "lambda").
        region: AWS region (e.g. "us-east-1").
        endpoint: Host value signed into every canonical request.
        canonicalize: Whether to apply full AWS path/query canonicalization.
    """

    def __init__(
        self,
        credentials: Credentials,
        service: str,
        region: str,
        endpoint: str,
        clock: Clock = utc_now,
        canonicalize: bool = False,
        key_cache: SigningKeyCache | None = None,
    ) -> None:
        """Initialize the signer.

        Raises:
            ConfigurationError: If a required value is empty.
        """
        required = {
            "access_key": credentials.access_key,
            "secret_key": credentials.secret_key,
            "service": service,
            "region": region,
            "endpoint": endpoint,
        }
        missing = [name for name, value in required.items() if not value]
        if missing:
            raise ConfigurationError(f"Missing required signing settings: {', '.join(missing)}")

        self.credentials = credentials
        self.service = service
        self.region = region
        self.endpoint = endpoint
        self.clock = clock
        self.canonicalize = canonicalize
        self.key_cache = key_cache

    @classmethod
    def from_config(cls, config: SigningConfig, clock: Clock = utc_now) -> SigV4Signer:
        """Create a signer from a validated SigningConfig."""
        credentials = Credentials(
            access_key=config.access_key,
            secret_key=config.secret_key.get_secret_value(),
            session_token=config.session_token,
        )
        return cls(
            credentials,
            service=config.service,
            region=config.region,
            endpoint=config.endpoint,
            clock=clock,
            canonicalize=config.canonicalize,
            key_cache=SigningKeyCache() if config.cache_signing_keys else None,
        )

    def signing_key(self, date_stamp: str) -> bytes:
        if self.key_cache is not None:
            return self.key_cache.get(self.credentials, date_stamp, self.region, self.service)
        return derive_signing_key(
            self.credentials.secret_key, date_stamp, self.region, self.service
        )

    def sign(
        self, method: str, path: str, query: str = "", body: bytes | None = None
    ) -> SignedRequest:
        """Sign one request.

        The clock is read exactly once; both the date stamp and the amz-date
        come from that instant.

        Args:
            method: HTTP method.
            path: Absolute request path.
            query: Raw query string.
            body: Fully buffered request body.

        Returns:
            The signing artifacts, including the headers to apply.
        """
        date_stamp, amz_date = format_timestamps(self.clock())
        session_token = self.credentials.session_token

        canonical_request = build_canonical_request(
            method=method,
            path=path,
            query=query,
            host=self.endpoint,
            amz_date=amz_date,
            body=body,
            session_token=session_token,
            canonicalize=self.canonicalize,
        )
        scope = credential_scope(date_stamp, self.region, self.service)
        string_to_sign = build_string_to_sign(amz_date, scope, canonical_request)

        logger.debug("CanonicalRequest:\n%s", canonical_request.text)
        logger.debug("StringToSign:\n%s", string_to_sign)

        signature = compute_signature(self.signing_key(date_stamp), string_to_sign)
        authorization = build_authorization_header(
            self.credentials.access_key, scope, canonical_request.signed_headers, signature
        )

        headers = {
            HEADER_DATE: amz_date,
            HEADER_CONTENT_SHA256: canonical_request.payload_hash,
        }
        if session_token is not None:
            headers[HEADER_SECURITY_TOKEN] = session_token
        headers[HEADER_AUTHORIZATION] = authorization

        return SignedRequest(
            amz_date=amz_date,
            date_stamp=date_stamp,
            credential_scope=scope,
            canonical_request=canonical_request,
            string_to_sign=string_to_sign,
            signature=signature,
            authorization=authorization,
            headers=headers,
        )


# ---------------------------------------------------------------------------
# URI canonicalization (used when canonicalize=True)
# ---------------------------------------------------------------------------


def _uri_encode(s: str, encode_slash: bool = True) -> str:
    """AWS URI encoding.

    Characters A-Z, a-z, 0-9, '-', '_', '.', '~' are not encoded.
    All other characters are percent-encoded with uppercase hex.
    Spaces become %20 (not +).
    """
    safe = "-_.~" if encode_slash else "-_.~/"
    return urllib.parse.quote(s, safe=safe)


def _uri_encode_path(path: str) -> str:
    """URI-encode a path segment by segment, preserving forward slashes."""
    if not path:
        return "/"
    segments = path.split("/")
    result = "/".join(_uri_encode(seg, encode_slash=False) for seg in segments)
    if not result.startswith("/"):
        result = "/" + result
    return result


def _build_canonical_query_string(query_string: str) -> str:
    """Build the canonical query string from a raw query string.

    Parameters are decoded, sorted by name then value (byte order), and
    re-encoded. Parameters with no value get an empty value (``acl=``).
    """
    if not query_string:
        return ""

    params: list[tuple[str, str]] = []
    for pair in query_string.split("&"):
        if not pair:
            continue
        name, _, value = pair.partition("=")
        params.append((urllib.parse.unquote_plus(name), urllib.parse.unquote_plus(value)))

    params.sort()

    return "&".join(f"{_uri_encode(name)}={_uri_encode(value)}" for name, value in params)
