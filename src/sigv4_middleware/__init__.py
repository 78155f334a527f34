"""SigV4 signing middleware: sign inbound requests before forwarding them."""

from sigv4_middleware.middleware import SigV4Middleware, add_sigv4_signing
from sigv4_middleware.signer import Credentials, SignedRequest, SigV4Signer, SigningKeyCache

__version__ = "0.1.0"
__all__ = [
    "Credentials",
    "SigV4Middleware",
    "SigV4Signer",
    "SignedRequest",
    "SigningKeyCache",
    "add_sigv4_signing",
]
