"""Command-line entry point for the WidgetBot API, operator console and ingestion."""

from __future__ import annotations

import argparse
import json
import subprocess
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from widgetbot.config import config

if TYPE_CHECKING:
    from collections.abc import Sequence
    from logging import Logger

PROJECT_ROOT = Path(__file__).resolve().parent
DEFAULT_APP = PROJECT_ROOT / "app.py"


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Build the CLI parser and read command-line arguments."""  # noqa: DOC201
    parser = argparse.ArgumentParser(
        description="Run the WidgetBot HTTP API, operator console or ingestion.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP API with uvicorn.")
    serve.add_argument(
        "--host",
        default="127.0.0.1",
        help="Bind address for the API server (default: 127.0.0.1).",
    )
    serve.add_argument(
        "--port",
        type=int,
        default=8000,
        help="Port for the API server (default: 8000).",
    )
    serve.add_argument(
        "--reload",
        action="store_true",
        help="Restart the server when source files change.",
    )

    ui = subparsers.add_parser("ui", help="Launch the Streamlit operator console.")
    ui.add_argument(
        "--app",
        type=Path,
        default=DEFAULT_APP,
        help="Operator console script (default: app.py).",
    )
    ui.add_argument(
        "--port",
        type=int,
        default=8501,
        help="Operator console port (default: 8501).",
    )
    ui.add_argument(
        "--address",
        default="localhost",
        help="Address the operator console binds to (default: localhost).",
    )
    ui.add_argument(
        "--show",
        dest="headless",
        action="store_false",
        help="Open the operator console in a browser window.",
    )
    ui.set_defaults(headless=True)

    ingest = subparsers.add_parser(
        "ingest", help="Rebuild the vector index of one tenant."
    )
    ingest.add_argument("tenant_id", help="Id of the tenant to ingest.")

    return parser.parse_args(argv)


def build_streamlit_command(
    script_path: Path,
    *,
    port: int,
    headless: bool,
    address: str,
) -> list[str]:
    """Construct the streamlit CLI invocation."""  # noqa: DOC201
    return [
        sys.executable,
        "-m",
        "streamlit",
        "run",
        str(script_path),
        "--server.port",
        str(port),
        "--server.address",
        address,
        "--server.headless",
        "true" if headless else "false",
    ]


def run_streamlit(command: Sequence[str], logger: Logger) -> int:
    """Run the streamlit command and return its exit code."""  # noqa: DOC201
    try:
        result = subprocess.run(
            command,
            check=False,
            cwd=PROJECT_ROOT,
        )
    except KeyboardInterrupt:
        logger.info("Operator console stopped by user")
        return 0
    except OSError:
        logger.exception("Unable to launch Streamlit")
        return 1
    return result.returncode


def run_ui(args: argparse.Namespace, logger: Logger) -> int:
    """Launch the operator console."""  # noqa: DOC201
    script_path = (
        args.app if args.app.is_absolute() else (PROJECT_ROOT / args.app)
    ).resolve()
    if not script_path.exists():
        logger.error("Operator console script not found: %s", script_path)
        return 1

    logger.info(
        "Starting operator console at http://%s:%s (headless=%s)",
        args.address,
        args.port,
        args.headless,
    )
    command = build_streamlit_command(
        script_path,
        port=args.port,
        headless=args.headless,
        address=args.address,
    )
    return_code = run_streamlit(command, logger)
    if return_code != 0:
        logger.error("Operator console exited with status %s", return_code)
    return return_code


def run_server(args: argparse.Namespace, logger: Logger) -> int:
    """Serve the HTTP API until interrupted."""  # noqa: DOC201
    import uvicorn  # noqa: PLC0415

    logger.info("Starting WidgetBot API at http://%s:%s", args.host, args.port)
    uvicorn.run(
        "widgetbot.api:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=config.LOG_LEVEL.lower(),
    )
    return 0


def run_ingest(args: argparse.Namespace, logger: Logger) -> int:
    """Ingest one tenant and print the result as JSON."""  # noqa: DOC201
    from widgetbot.errors import WidgetBotError  # noqa: PLC0415
    from widgetbot.pipeline import (  # noqa: PLC0415
        IngestionPipeline,
        build_embedding_service,
    )

    pipeline = IngestionPipeline(embedding_service=build_embedding_service())
    try:
        result = pipeline.ingest(args.tenant_id)
    except WidgetBotError as exc:
        logger.error("Ingestion failed: %s", exc.message)  # noqa: TRY400
        print(json.dumps(exc.to_payload()))  # noqa: T201
        return 1

    print(json.dumps(result.to_payload()))  # noqa: T201
    return 0


COMMANDS = {
    "serve": run_server,
    "ui": run_ui,
    "ingest": run_ingest,
}


def main(argv: Sequence[str] | None = None) -> int:
    """Validate configuration and dispatch the selected command."""  # noqa: DOC201
    args = parse_args(argv)

    config.setup_logging()
    logger = config.get_logger(__name__)

    try:
        config.validate()
    except ValueError as exc:
        # Tenants may carry their own completion keys; only the console
        # strictly needs the shared one for its preview chat.
        if args.command == "ui":
            logger.exception("Configuration invalid")
            return 1
        logger.warning("%s Tenants without their own key cannot chat.", exc)

    return COMMANDS[args.command](args, logger)


if __name__ == "__main__":
    sys.exit(main())
