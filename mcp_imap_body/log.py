import os
import sys

from loguru import logger

# stdout belongs to the MCP stdio transport
logger.remove()
logger.add(sys.stderr, level=os.getenv("MCP_IMAP_BODY_LOG_LEVEL", "INFO"))

__all__ = ["logger"]
