import psutil
import gc
import logging
import re
import uuid
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

# Control characters except tab, newline and carriage return
_CONTROL_CHARS = re.compile(r'[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]')

def get_memory_usage() -> float:
    """Get current memory usage in MB"""
    process = psutil.Process()
    return process.memory_info().rss / 1024 / 1024

def optimize_memory():
    """Force garbage collection to free memory"""
    gc.collect()

def log_memory_usage(operation: str):
    """Log memory usage for debugging"""
    memory_mb = get_memory_usage()
    logger.debug(f"{operation} - Memory usage: {memory_mb:.2f} MB")

def sanitize_string(value: str) -> str:
    """Trim whitespace and drop NUL bytes and control characters"""
    return _CONTROL_CHARS.sub('', value).strip()

def new_request_id() -> str:
    return str(uuid.uuid4())

def utc_timestamp() -> str:
    """Current time as an ISO-8601 string"""
    return datetime.now(timezone.utc).isoformat()

def mask_token(token: str, visible: int = 4) -> str:
    """Show only the first characters of a secret for log lines"""
    if len(token) <= visible:
        return '*' * len(token)
    return token[:visible] + '...'
