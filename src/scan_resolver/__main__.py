"""Command-line entrypoint: resolve or validate a product code."""

import argparse
import asyncio
import json
import sys
from collections.abc import Sequence

from scan_resolver.app_logging import configure_logging
from scan_resolver.config import Settings
from scan_resolver.containers import build_container
from scan_resolver.domain.errors import InvalidIdentifierError
from scan_resolver.domain.gtin import detect_gtin_type, validate_gtin


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="scan-resolver", description="Resolve scanned product codes"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    lookup = subparsers.add_parser("lookup", help="Resolve a code to a product")
    lookup.add_argument("code", help="EAN-8, UPC-A, EAN-13 or GTIN-14 code")
    lookup.add_argument(
        "--refresh", action="store_true", help="Bypass the cache for this lookup"
    )

    validate = subparsers.add_parser("validate", help="Check a code's checksum")
    validate.add_argument("code")
    return parser


async def _lookup(code: str, refresh: bool, settings: Settings) -> dict[str, object]:
    container = build_container(settings)
    try:
        result = await container.engine.resolve(code, force_refresh=refresh)
    finally:
        await container.close_resources()
    return result.to_payload()


def _validate(code: str) -> dict[str, object]:
    gtin = validate_gtin(code)
    return {"gtin": gtin, "valid": True, "type": detect_gtin_type(gtin).value}


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings()
    configure_logging(settings.log_level)
    try:
        if args.command == "lookup":
            payload = asyncio.run(_lookup(args.code, args.refresh, settings))
        else:
            payload = _validate(args.code)
    except InvalidIdentifierError as exc:
        error = {"code": exc.code, "valid": False, "reason": exc.reason}
        print(json.dumps(error, indent=2))
        return 2
    print(json.dumps(payload, indent=2, ensure_ascii=False))
    return 0 if payload.get("status") != "not_found" else 1


if __name__ == "__main__":
    sys.exit(main())
