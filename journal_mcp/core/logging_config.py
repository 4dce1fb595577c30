import logging
import sys
from typing import Any, Dict

DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level: str = 'INFO', transport: str = 'stdio') -> None:
    """
    Configure logging for the Journal MCP Server.

    All output goes to stderr: in stdio mode stdout carries the protocol.

    Args:
        level: Logging level (default: 'INFO')
        transport: Server transport ('stdio' or 'sse')
    """
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    root_logger.setLevel(level.upper())

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(logging.Formatter(DEFAULT_FORMAT))
    root_logger.addHandler(stderr_handler)

    if transport == 'stdio':
        root_logger.info("Logging configured for stdio transport. All logs will be written to stderr.")
    else:
        root_logger.info(f"Logging configured for {transport} transport.")

    logger = logging.getLogger('journal_mcp')
    logger.setLevel(level.upper())
    logger.propagate = True
    logger.handlers = []

    # Library loggers are noisy at DEBUG
    logging.getLogger("aiohttp.access").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def setup_logging_from_config(logging_config: Dict[str, Any]) -> None:
    """
    Set up logging from a logging config dictionary (the ``logging`` section of the YAML config).
    Supports multiple handlers (StreamHandler, FileHandler) and custom formats.

    StreamHandlers always write to stderr.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(logging_config.get('level', 'INFO').upper())
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    formatter = logging.Formatter(logging_config.get('format', DEFAULT_FORMAT))
    for handler_cfg in logging_config.get('handlers', []):
        if handler_cfg['type'] == 'StreamHandler':
            handler = logging.StreamHandler(sys.stderr)
        elif handler_cfg['type'] == 'FileHandler':
            handler = logging.FileHandler(handler_cfg['filename'])
        else:
            logging.getLogger(__name__).warning(f"Unknown log handler type: {handler_cfg['type']}")
            continue
        handler.setLevel(handler_cfg.get('level', 'INFO').upper())
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)
