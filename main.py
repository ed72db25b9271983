"""Command-line interface for the My Swing admin dashboard."""

from __future__ import annotations
import argparse
import logging
import os
import sys
from typing import Sequence

from swingadmin.config import (
    CONFIG_PATH_ENV,
    ConfigurationError,
    Settings,
    load_settings,
    resolve_config_path,
)

logger = logging.getLogger("myswing.admin.main")


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="My Swing admin dashboard")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    serve_parser = subparsers.add_parser("serve", help="Start the admin dashboard")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Bind address")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port to listen on (default: 8000)",
    )
    serve_parser.add_argument(
        "--ssl-certfile",
        default=None,
        help="Path to the TLS certificate chain in PEM format",
    )
    serve_parser.add_argument(
        "--ssl-keyfile",
        default=None,
        help="Path to the TLS private key in PEM format",
    )
    serve_parser.add_argument(
        "--config",
        default=None,
        help=f"YAML settings file (default: ${CONFIG_PATH_ENV})",
    )

    check_parser = subparsers.add_parser(
        "check-config", help="Validate the settings and print the resolved values"
    )
    check_parser.add_argument(
        "--config",
        default=None,
        help=f"YAML settings file (default: ${CONFIG_PATH_ENV})",
    )

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "check-config"}

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args(args_list)
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _load(config_path: str | None) -> Settings:
    try:
        return load_settings(os.environ, config_path=resolve_config_path(config_path))
    except ConfigurationError as exc:
        raise SystemExit(f"Configuration error: {exc}") from exc


def _serve(
    *,
    settings: Settings,
    host: str,
    port: int,
    ssl_certfile: str | None,
    ssl_keyfile: str | None,
) -> None:
    from swingadmin.application import create_application
    import uvicorn

    if bool(ssl_certfile) ^ bool(ssl_keyfile):
        raise SystemExit("Both --ssl-certfile and --ssl-keyfile must be provided together.")

    protocol = "https" if ssl_certfile and ssl_keyfile else "http"
    logger.info("Starting admin dashboard on %s://%s:%s", protocol, host, port)

    app = create_application(settings)
    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level="info",
        ssl_certfile=ssl_certfile,
        ssl_keyfile=ssl_keyfile,
    )


def _check_config(settings: Settings) -> None:
    print(f"Administrator: {settings.admin.email}")
    print(f"Backend: {settings.supabase_url}")
    print(f"Secure cookies: {'yes' if settings.secure_cookies else 'no'}")
    if settings.site_url:
        print(f"Password reset links: {settings.site_url}")


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    args = _parse_args(argv)
    settings = _load(args.config)

    if args.command == "serve":
        _serve(
            settings=settings,
            host=args.host,
            port=args.port,
            ssl_certfile=args.ssl_certfile,
            ssl_keyfile=args.ssl_keyfile,
        )
    elif args.command == "check-config":
        _check_config(settings)


if __name__ == "__main__":
    main()
