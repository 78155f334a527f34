"""CLI entry point: sign a single request description and print the headers.

Useful for checking a deployment's credentials against an endpoint with
curl, or for comparing the canonical request with what the remote service
reports in a ``SignatureDoesNotMatch`` error.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from pydantic import ValidationError

from sigv4_middleware.config import load_config
from sigv4_middleware.errors import SigV4Error
from sigv4_middleware.logging_config import configure_logging
from sigv4_middleware.signer import SigV4Signer


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Args:
        argv: Argument list to parse. Defaults to sys.argv[1:].

    Returns:
        Parsed argument namespace.
    """
    parser = argparse.ArgumentParser(
        prog="sigv4-middleware",
        description="Compute AWS SigV4 headers for a request",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("sigv4.yaml"),
        help="Path to YAML configuration file (default: sigv4.yaml)",
    )
    parser.add_argument("--method", type=str, default="GET", help="HTTP method (default: GET)")
    parser.add_argument("--path", type=str, default="/", help="Request path (default: /)")
    parser.add_argument(
        "--query", type=str, default="", help="Raw query string without the leading '?'"
    )
    body = parser.add_mutually_exclusive_group()
    body.add_argument("--data", type=str, default=None, help="Request body as UTF-8 text")
    body.add_argument(
        "--data-file", type=Path, default=None, help="Read the request body from a file"
    )
    parser.add_argument(
        "--output",
        type=str,
        default="text",
        choices=["text", "json"],
        help="Print headers as 'Name: value' lines or as a JSON object",
    )
    parser.add_argument(
        "--show-canonical",
        action="store_true",
        help="Also print the canonical request and string to sign",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Log level (overrides config)",
    )
    parser.add_argument(
        "--log-format",
        type=str,
        default=None,
        choices=["text", "json"],
        help="Log format: 'text' (human-readable) or 'json' (structured)",
    )
    return parser.parse_args(argv)


def _read_body(args: argparse.Namespace) -> bytes:
    if args.data_file is not None:
        return args.data_file.read_bytes()
    if args.data is not None:
        return args.data.encode("utf-8")
    return b""


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the sigv4-middleware CLI.

    Args:
        argv: Argument list to parse. Defaults to sys.argv[1:].
    """
    args = parse_args(argv)

    # Use a basic stderr logger for config-loading errors
    logging.basicConfig(level=logging.INFO, stream=sys.stderr)
    logger = logging.getLogger("sigv4_middleware")

    try:
        config = load_config(args.config)
    except FileNotFoundError:
        logger.error("Config file not found: %s", args.config)
        sys.exit(1)
    except ValidationError as exc:
        logger.error("Invalid configuration in %s: %s", args.config, exc)
        sys.exit(1)
    except Exception as exc:
        logger.error("Failed to load config: %s", exc)
        sys.exit(1)

    if args.log_level is not None:
        config.logging.level = args.log_level
    if args.log_format is not None:
        config.logging.format = args.log_format

    configure_logging(
        level=config.logging.level,
        fmt=config.logging.format,
        secrets=[config.signing.secret_key.get_secret_value(), config.signing.session_token or ""],
    )

    try:
        body = _read_body(args)
    except OSError as exc:
        logger.error("Failed to read request body from %s: %s", args.data_file, exc)
        sys.exit(1)

    try:
        signer = SigV4Signer.from_config(config.signing)
    except SigV4Error as exc:
        logger.error("%s", exc.message)
        sys.exit(1)

    signed = signer.sign(args.method.upper(), args.path, args.query, body)

    if args.output == "json":
        payload: dict = {"headers": signed.headers}
        if args.show_canonical:
            payload["canonical_request"] = signed.canonical_request.text
            payload["string_to_sign"] = signed.string_to_sign
        print(json.dumps(payload, indent=2))
        return

    if args.show_canonical:
        print("# Canonical request")
        print(signed.canonical_request.text)
        print()
        print("# String to sign")
        print(signed.string_to_sign)
        print()
    for name, value in signed.headers.items():
        print(f"{name}: {value}")


if __name__ == "__main__":
    main()
