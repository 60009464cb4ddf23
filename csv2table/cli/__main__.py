from __future__ import annotations

import argparse
import sys
from pathlib import Path

from dotenv import load_dotenv

from csv2table.config.loader import GLOBAL_CONFIG_NAME, ConfigError, build_email_config, load_global_document
from csv2table.csvfile.reader import CsvReadError, preview_csv, scan_csv_files
from csv2table.logging.init import log_summary, setup_logging
from csv2table.services.notification import NotificationError, send_notification
from csv2table.services.orchestrator import ProcessingError, process_all
from csv2table.services.summary import render_summary_line

"""CLI entrypoint.

Flow:
- Load .env (MYSQL_* connection fallbacks)
- Load and validate the directory's global config (optional)
- Import every CSV file of the directory
- Print the SUMMARY line and send the notification email
"""

EXIT_SUCCESS_ALL = 0
EXIT_FATAL = 1
EXIT_PARTIAL_FAILURE = 2


def _load_env_file(path: Path) -> None:
    """Load .env; values already in the process environment are kept."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=False)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="csv2table", description="CSV -> MySQL table importer")
    p.add_argument("directory", nargs="?", default=".", help="Directory with .csv files (default: .)")
    p.add_argument(
        "--config",
        default=GLOBAL_CONFIG_NAME,
        help=f"Global config file name inside the directory (default: {GLOBAL_CONFIG_NAME})",
    )
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--inspect-data", action="store_true", help="Print headers & first rows of each file then exit")
    p.add_argument("--no-email", action="store_true", help="Do not send the notification email")
    return p.parse_args(argv)


def _inspect_data(directory: Path, delimiter: str) -> int:
    try:
        csv_files = scan_csv_files(directory)
    except CsvReadError as e:
        print(f"inspect: {e}")
        return EXIT_FATAL
    if not csv_files:
        print("inspect: no .csv files")
        return EXIT_SUCCESS_ALL
    for f in csv_files:
        print(f"FILE: {f.name}")
        try:
            df = preview_csv(f, delimiter=delimiter)
        except Exception as e:  # pragma: no cover - pandas parser errors vary
            print(f"  read_error: {e}")
            continue
        print(f"  columns={list(df.columns)}")
        print("  sample_rows=", df.to_dict(orient="records"))
    return EXIT_SUCCESS_ALL


def main(argv: list[str] | None = None) -> int:
    # None のときのみ sys.argv を読む ([] はテストからの明示指定)
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    logger = setup_logging(debug=args.debug)
    if args.debug:
        logger.debug("debug mode enabled")

    _load_env_file(Path(".env"))

    directory = Path(args.directory)
    if not directory.is_dir():
        logger.error(f"directory not found: {directory}")
        return EXIT_FATAL

    try:
        global_document = load_global_document(directory, args.config)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    if args.inspect_data:
        delimiter = (global_document or {}).get("delimiter", ";")
        return _inspect_data(directory, delimiter)

    logger.info(f"Processing files from: {directory}")
    try:
        result = process_all(directory, global_document)
    except ProcessingError as e:
        logger.error(f"processing: {e}")
        return EXIT_FATAL

    log_summary(render_summary_line(result).removeprefix("SUMMARY "))

    if not args.no_email:
        try:
            send_notification(build_email_config(global_document), result.file_stats or [])
        except NotificationError as e:
            logger.error(f"notification: {e}")

    if result.failed_files > 0:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
