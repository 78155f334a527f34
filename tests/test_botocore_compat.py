"""Cross-check signatures against botocore's SigV4Auth with frozen time.

For requests whose path and query need no encoding, the verbatim canonical
form is identical to botocore's, so the signatures must match exactly.
With canonicalize=True the signatures must also match for unsorted queries.
"""

import json
from typing import Optional

from botocore.auth import SigV4Auth
from botocore.awsrequest import AWSRequest
from botocore.credentials import Credentials as BotoCredentials
from freezegun import freeze_time

from conftest import (
    ACCESS_KEY,
    ENDPOINT,
    REGION,
    SECRET_KEY,
    SERVICE,
    SESSION_TOKEN,
    fixed_clock,
)
from sigv4_middleware.signer import Credentials, SigV4Signer, parse_authorization_header

FIXED_TIME = "2024-01-01 00:00:00"


def _sign_with_botocore(
    method: str,
    path: str,
    query: str = "",
    body: bytes = b"",
    token: Optional[str] = None,
) -> dict[str, str]:
    url = f"https://{ENDPOINT}{path}"
    if query:
        url = f"{url}?{query}"
    creds = BotoCredentials(ACCESS_KEY, SECRET_KEY, token)
    req = AWSRequest(method=method, url=url, data=body, headers={})
    req.context = {}
    with freeze_time(FIXED_TIME):
        SigV4Auth(creds, SERVICE, REGION).add_auth(req)
    return dict(req.headers)


def _signer(token: Optional[str] = None, canonicalize: bool = False) -> SigV4Signer:
    return SigV4Signer(
        Credentials(ACCESS_KEY, SECRET_KEY, token),
        service=SERVICE,
        region=REGION,
        endpoint=ENDPOINT,
        clock=fixed_clock,
        canonicalize=canonicalize,
    )


def _signature(authorization: str) -> str:
    return parse_authorization_header(authorization)["signature"]


class TestBotocoreCompatibility:
    """Signatures match botocore for the fixed host/x-amz-date header set."""

    def test_get_health(self):
        ours = _signer().sign("GET", "/health", "", b"")
        theirs = _sign_with_botocore("GET", "/health")

        assert theirs["X-Amz-Date"] == ours.amz_date
        assert _signature(theirs["Authorization"]) == ours.signature
        assert theirs["Authorization"] == ours.authorization

    def test_post_with_json_body(self):
        body = json.dumps({"action": "invoke", "payload": [1, 2, 3]}).encode()
        ours = _signer().sign("POST", "/2015-03-31/functions/my-fn/invocations", "", body)
        theirs = _sign_with_botocore(
            "POST", "/2015-03-31/functions/my-fn/invocations", body=body
        )
        assert _signature(theirs["Authorization"]) == ours.signature

    def test_session_token(self):
        ours = _signer(token=SESSION_TOKEN).sign("GET", "/health")
        theirs = _sign_with_botocore("GET", "/health", token=SESSION_TOKEN)

        assert theirs["X-Amz-Security-Token"] == ours.headers["X-Amz-Security-Token"]
        assert theirs["Authorization"] == ours.authorization

    def test_sorted_single_query_verbatim(self):
        ours = _signer().sign("GET", "/items", "limit=10")
        theirs = _sign_with_botocore("GET", "/items", "limit=10")
        assert _signature(theirs["Authorization"]) == ours.signature

    def test_unsorted_query_needs_canonicalize(self):
        query = "zebra=1&apple=2&banana=3"
        theirs = _signature(_sign_with_botocore("GET", "/items", query)["Authorization"])

        assert _signer().sign("GET", "/items", query).signature != theirs
        assert _signer(canonicalize=True).sign("GET", "/items", query).signature == theirs
