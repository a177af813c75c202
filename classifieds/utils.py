# classifieds/utils.py
"""Shared utilities: logging setup, retry decorator and small text helpers."""
import logging
import os
import re
import time
from datetime import datetime, timezone
from functools import wraps

from dotenv import load_dotenv

load_dotenv()


def get_logger(name=__name__):
    level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
        level=getattr(logging, level, logging.INFO)
    )
    return logging.getLogger(name)

logger = get_logger("classifieds")


def retry(exceptions, tries=3, delay=0.2, backoff=2, logger=logger):
    """Retry the wrapped callable on `exceptions` with exponential backoff.

    The last attempt is not guarded, so its exception reaches the caller.
    """
    def deco_retry(f):
        @wraps(f)
        def f_retry(*args, **kwargs):
            mtries, mdelay = tries, delay
            while mtries > 1:
                try:
                    return f(*args, **kwargs)
                except exceptions as e:
                    logger.warning("Retryable error: %s, retrying in %s sec", e, mdelay)
                    time.sleep(mdelay)
                    mtries -= 1
                    mdelay *= backoff
            return f(*args, **kwargs)
        return f_retry
    return deco_retry


def utcnow() -> datetime:
    # naive UTC, matches what the DateTime columns store
    return datetime.now(timezone.utc).replace(tzinfo=None)


_TERM_RE = re.compile(r"\w+", re.UNICODE)


def tokenize(text: str | None) -> list[str]:
    return [t.lower() for t in _TERM_RE.findall(text or "")]


def like_pattern(fragment: str) -> str:
    """Wrap `fragment` for a case-insensitive substring match, escaping wildcards."""
    escaped = fragment.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"
