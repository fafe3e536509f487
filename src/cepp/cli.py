"""Command line interface: sign and verify CEPP certificates on ``.eml`` files."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from collections.abc import Sequence
from email import policy
from email.message import Message
from email.parser import BytesParser
from pathlib import Path

from .config import CeppConfig
from .exceptions import CeppError
from .logging_config import setup_logging
from .message import sign_message, verify_message
from .service import CertificationService
from .truststore import load_ca_keystore, load_trust_store

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_UNTRUSTED = 1
EXIT_ERROR = 2

# Keep header lines unwrapped so CEPP-Data is written byte-for-byte
_OUTPUT_POLICY = policy.default.clone(max_line_length=0)


def _read_message(path: str) -> Message:
    if path == "-":
        return BytesParser(policy=policy.default).parse(sys.stdin.buffer)
    with Path(path).open("rb") as f:
        return BytesParser(policy=policy.default).parse(f)


def _cmd_sign(args: argparse.Namespace, config: CeppConfig) -> int:
    keystore = load_ca_keystore(args.keystore) if args.keystore else config.load_ca_keystore()
    message = _read_message(args.message)
    signed = sign_message(message, args.issuer, keystore)
    output = message.as_bytes(policy=_OUTPUT_POLICY)
    if args.output:
        Path(args.output).write_bytes(output)
    else:
        sys.stdout.buffer.write(output)
    logger.info("Signed %s with certificate serial %s", args.message, signed.record.s)
    return EXIT_OK


def _cmd_verify(args: argparse.Namespace, config: CeppConfig) -> int:
    trust_store = (
        load_trust_store(args.trust_store) if args.trust_store else config.load_trust_store()
    )
    message = _read_message(args.message)
    outcome = verify_message(message, trust_store, now=args.now)

    if args.json:
        report = {
            "result": outcome.result.value,
            "trusted": outcome.is_trusted,
            "reason": outcome.reason,
            "certificate": outcome.record.to_dict() if outcome.record else None,
            "spam_contact": CertificationService.spam_contact_for(outcome, trust_store),
        }
        print(json.dumps(report, indent=2))
    else:
        print(outcome.result.value)
    return EXIT_OK if outcome.is_trusted else EXIT_UNTRUSTED


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cepp", description="CEPP e-mail certificate tool")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    sign = subparsers.add_parser("sign", help="Attach a signed certificate to a message")
    sign.add_argument("message", help="Path to an .eml file, or - for stdin")
    sign.add_argument("--issuer", required=True, help="Issuer id in the CA keystore")
    sign.add_argument("--keystore", help="CA keystore file (YAML or JSON)")
    sign.add_argument("--output", "-o", help="Write the signed message here instead of stdout")
    sign.set_defaults(handler=_cmd_sign)

    verify = subparsers.add_parser("verify", help="Verify the certificate of a message")
    verify.add_argument("message", help="Path to an .eml file, or - for stdin")
    verify.add_argument("--trust-store", help="Trust store file (YAML or JSON)")
    verify.add_argument("--now", help="Current time as a YYMMDDHHMMSSZ timestamp")
    verify.add_argument("--json", action="store_true", help="Print a JSON report")
    verify.set_defaults(handler=_cmd_verify)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = CeppConfig.from_env()
    except CeppError as e:
        print(f"error: {e.message}", file=sys.stderr)
        return EXIT_ERROR
    setup_logging(
        "cepp-cli",
        log_level="DEBUG" if args.verbose else config.log_level,
        log_format=config.log_format,
    )

    try:
        return args.handler(args, config)
    except CeppError as e:
        print(f"error: {e.message}", file=sys.stderr)
        return EXIT_ERROR
    except (OSError, ValueError) as e:
        print(f"error: {e}", file=sys.stderr)
        return EXIT_ERROR


if __name__ == "__main__":
    sys.exit(main())
