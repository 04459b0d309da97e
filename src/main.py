"""Command-line entry point: validate pricing rules, migrate, then serve the API."""

from __future__ import annotations

import argparse
import logging
import sys
from logging.handlers import RotatingFileHandler

from src.core.config import Settings, get_config_dir, get_settings, validate_pricing_config
from src.core.errors import get_error_definition
from src.db.session import init_database

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    """Log to stdout and to a rotating file under the config directory."""
    log_dir = get_config_dir() / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)

    file_handler = RotatingFileHandler(
        log_dir / "dashboard.log", maxBytes=5 * 1024 * 1024, backupCount=3, encoding="utf-8"
    )
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[file_handler, logging.StreamHandler(sys.stdout)],
    )


def install_excepthook() -> None:
    """Route uncaught exceptions through the log before the process dies."""

    def _log_uncaught(exc_type, exc_value, exc_traceback):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_traceback)
            return
        logger.critical("Unhandled exception", exc_info=(exc_type, exc_value, exc_traceback))

    sys.excepthook = _log_uncaught


def check_pricing_rules(settings: Settings) -> bool:
    """Validate the pricing rules. Nothing may be priced with a broken rule set."""
    validation = validate_pricing_config(settings.pricing)
    if validation.valid:
        return True

    definition = get_error_definition("CONFIG_002")
    for error in validation.errors:
        logger.error(f"{definition.code} {definition.message}: {error}")
    print(f"Error: {definition.message}. {definition.suggestion}", file=sys.stderr)
    return False


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="dropship-dashboard", description=__doc__)
    parser.add_argument("--host", help="Override the configured bind address")
    parser.add_argument("--port", type=int, help="Override the configured port")
    parser.add_argument(
        "--check",
        action="store_true",
        help="Validate pricing rules and migrate the database, then exit",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(settings.log_level)
    install_excepthook()

    logger.info(f"Starting dropship dashboard (config dir {get_config_dir()})")
    logger.info(f"Mock mode: {settings.api.mock_mode}")

    if not check_pricing_rules(settings):
        return 1

    try:
        init_database()
    except Exception as e:
        logger.exception("Failed to initialize database")
        print(f"Error: Failed to initialize database: {e}", file=sys.stderr)
        return 1
    logger.info("Database ready")

    if args.check:
        return 0

    from src.web.server import create_app

    host = args.host or settings.web.host
    port = args.port or settings.web.port
    logger.info(f"Serving on http://{host}:{port}")
    create_app(settings).run(host=host, port=port, debug=settings.debug_mode, use_reloader=False)
    return 0


if __name__ == "__main__":
    sys.exit(main())
