"""
Utility helpers for the clinical decision tree navigator

Simple utility functions for ID, timestamp and filename generation.
"""

import re
import uuid
from datetime import datetime

# Display format for log and report timestamps, e.g. '18.10.2026, 14:03:05'
TIMESTAMP_FORMAT = "%d.%m.%Y, %H:%M:%S"


def generate_session_id(short=True):
    """
    Generate unique session identifier

    Args:
        short (bool): If True, return 8-char hex. If False, return full UUID.

    Returns:
        str: Session ID

    Examples:
        >>> generate_session_id()
        'a3f7e2b9'
    """
    full_id = uuid.uuid4().hex
    return full_id[:8] if short else full_id


def format_timestamp(moment):
    """Format a datetime for the audit log and report header."""
    return moment.strftime(TIMESTAMP_FORMAT)


def generate_report_filename(title, moment=None, unique=True):
    """
    Generate report filename from questionnaire title and date

    Format: log_{title_with_underscores}_{YYYY-MM-DD}[_{short_uuid}].txt

    Args:
        title (str): Questionnaire title (whitespace runs become '_')
        moment (datetime): Report date (defaults to now)
        unique (bool): Append a short random suffix

    Returns:
        str: Generated filename

    Examples:
        >>> generate_report_filename("Ankle fractures", datetime(2026, 10, 18), unique=False)
        'log_Ankle_fractures_2026-10-18.txt'
    """
    moment = moment or datetime.now()
    slug = re.sub(r"\s+", "_", title.strip()) or "questionnaire"
    # Path separators would escape the reports directory
    slug = slug.replace("/", "_").replace("\\", "_")
    name = f"log_{slug}_{moment.strftime('%Y-%m-%d')}"
    if unique:
        name = f"{name}_{generate_session_id(short=True)}"
    return f"{name}.txt"
