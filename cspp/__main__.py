"""Command-line launcher.

    python -m cspp [--config config.yaml] [--host H] [--port P]
    python -m cspp --ready-systemd > /etc/systemd/system/cspp.service
    python -m cspp --find-key <api key>
"""

from __future__ import annotations

import argparse
import shutil
import sys

import structlog
import uvicorn

from cspp.config import load_settings, reconcile_port_with_base_url, require_slack_credentials
from cspp.errors import ConfigError
from cspp.ingest.fileops import setup_directory
from cspp.logging_setup import configure_logging
from cspp.services.api_key import CredentialStore

logger = structlog.get_logger()

SYSTEMD_UNIT = """\
[Unit]
Description=CSPP image posting service
After=network-online.target
Wants=network-online.target

[Service]
Type=simple
ExecStart={exec_start}
EnvironmentFile=-/etc/cspp/cspp.env
Restart=on-failure
RestartSec=5

[Install]
WantedBy=multi-user.target
"""


def render_systemd_unit(config_file: str | None = None) -> str:
    """systemd unit that runs this service."""
    executable = shutil.which("cspp") or f"{sys.executable} -m cspp"
    exec_start = executable
    if config_file:
        exec_start += f" --config {config_file}"
    return SYSTEMD_UNIT.format(exec_start=exec_start)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cspp",
        description="Watch an uploads directory and post authorized images to Slack.",
    )
    parser.add_argument("--config", help="Path to a YAML config file")
    parser.add_argument(
        "--ready-systemd",
        action="store_true",
        help="Print a systemd unit for this service and exit",
    )
    parser.add_argument("--host", help="Listen address (overrides config)")
    parser.add_argument("--port", type=int, help="Listen port (overrides config)")
    parser.add_argument(
        "--find-key",
        metavar="KEY",
        help="Print the credential files holding KEY and exit",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    if args.ready_systemd:
        sys.stdout.write(render_systemd_unit(args.config))
        return 0

    try:
        settings = load_settings(args.config)
    except ConfigError as e:
        print(f"Error reading config file: {e.message}", file=sys.stderr)
        return 1

    configure_logging(settings.logging.level, settings.logging.json_format)

    if args.find_key:
        matches = CredentialStore(settings.paths.credentials_dir).search(args.find_key)
        for path in matches:
            print(path)
        return 0 if matches else 1

    if args.host:
        settings.server.host = args.host
    if args.port:
        settings.server.port = args.port

    try:
        reconcile_port_with_base_url(settings)
        require_slack_credentials(settings)
    except ConfigError as e:
        logger.error("cspp.config_invalid", error=e.message, details=e.details)
        return 1

    for directory in settings.paths.all_dirs():
        setup_directory(directory)

    from cspp.main import create_app

    uvicorn.run(
        create_app(settings),
        host=settings.server.host,
        port=settings.server.port,
        log_level=settings.logging.level.lower(),
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
