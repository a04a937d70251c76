"""
Shared entry-point plumbing for the report scripts: arguments, logging,
config and the single place where fatal errors become exit codes.
"""

import argparse
import logging
from typing import Callable, List, Optional

from src.common.errors import ReportError
from src.common.report_writer import FORMATS
from src.common.vbr_connector import ConfigLoader, VbrConnector

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(level=logging.INFO):
    logging.basicConfig(level=level, format=LOG_FORMAT)


def build_parser(description: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=description)
    parser.add_argument('--config', help="Path to config.yaml (default: the one next to the script)")
    parser.add_argument('--format', choices=FORMATS, help="Report format (default from config)")
    parser.add_argument('--output', help="Write the report to this file instead of stdout")
    parser.add_argument('--verbose', action='store_true', help="Enable debug logging")
    return parser


def load_script_config(parser: argparse.ArgumentParser, argv: Optional[List[str]],
                       default_config_path: str) -> dict:
    """Parse argv, load the YAML config and let command-line options win."""
    args = parser.parse_args(argv)
    configure_logging(logging.DEBUG if args.verbose else logging.INFO)

    config = ConfigLoader.load_config(args.config or default_config_path)
    report = config['report']
    if args.format:
        report['format'] = args.format
    if args.output:
        report['output'] = args.output
    if report['format'] not in FORMATS:
        parser.error(f"unsupported report format '{report['format']}' in config")
    return config


def run_report(connector: VbrConnector, body: Callable[[], None]) -> int:
    """
    Connect, run the report body and always tear the session down.
    Returns the process exit code.
    """
    try:
        connector.connect()
        body()
        return 0
    except ReportError as e:
        logger.error(f"❌ {e.message}")
        if e.hint:
            logger.error(f"   Hint: {e.hint}")
        return e.exit_code
    finally:
        connector.disconnect()
