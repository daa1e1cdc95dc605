"""
Utility helpers for the intake flow engine

Simple utility functions for ID generation, config file loading and
derived answers.
"""

import json
import uuid
from datetime import date, datetime
from pathlib import Path
from typing import Optional

# Repository data directory (flow graph, sections, rule table, catalog fallback)
DATA_DIR = Path(__file__).resolve().parents[2] / "data"


def generate_intake_id(short=True):
    """
    Generate unique intake identifier

    Args:
        short (bool): If True, return 8-char hex. If False, return full UUID.

    Returns:
        str: Intake ID

    Examples:
        >>> generate_intake_id()
        'a3f7e2b9'
    """
    full_id = uuid.uuid4().hex
    return full_id[:8] if short else full_id


def load_json_config(path, description):
    """
    Load a JSON configuration file.

    Args:
        path: File path (str or Path)
        description: Human-readable name used in the error message

    Returns:
        dict: Parsed JSON

    Raises:
        FileNotFoundError: If the file doesn't exist
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"{description} not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        return json.load(f)


def derive_age(date_of_birth: str, today: Optional[date] = None) -> Optional[int]:
    """
    Compute age in whole years from an ISO date of birth.

    Args:
        date_of_birth: 'YYYY-MM-DD'
        today: Reference date (defaults to today)

    Returns:
        int age, or None if the date can't be parsed or lies in the future

    Examples:
        >>> derive_age('1990-06-15', today=date(2024, 6, 14))
        33
    """
    if not isinstance(date_of_birth, str):
        return None

    try:
        born = datetime.strptime(date_of_birth.strip(), "%Y-%m-%d").date()
    except ValueError:
        return None

    today = today or date.today()
    if born > today:
        return None

    age = today.year - born.year
    if (today.month, today.day) < (born.month, born.day):
        age -= 1
    return age
