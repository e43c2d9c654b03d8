"""
Text, number, and name utilities
================================
Shared helpers for every parser: whitespace/entity cleanup, strict numeric
coercion, and player display-name handling.
"""

import html
import re
from typing import Any, Optional, Tuple, Union

import pandas as pd

CellValue = Union[str, int, float, None]

_INTEGER_RE = re.compile(r'^-?\d+$')
_NUMBER_RE = re.compile(r'^-?\d+(\.\d+)?$')
_HALF_INNING_RE = re.compile(r'\b(top|bot|bottom)\s*(\d+)', re.IGNORECASE)


def clean_text(value: Any) -> str:
    """Decode HTML entities, turn NBSPs into spaces, collapse whitespace"""
    if value is None:
        return ''
    text = html.unescape(str(value)).replace('\u00a0', ' ')
    return re.sub(r'\s+', ' ', text).strip()


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def parse_integer(value: Any) -> Optional[int]:
    """Strict integer coercion - '-' and blanks are None, decimals are rejected"""
    if value is None:
        return None
    if _is_number(value):
        if pd.isna(value):
            return None
        return int(value) if float(value).is_integer() else None

    text = clean_text(value).replace(',', '')
    if not text or text == '-' or not _INTEGER_RE.match(text):
        return None
    return int(text)


def parse_number(value: Any) -> Optional[Union[int, float]]:
    """Integer or decimal coercion, None when the value isn't numeric"""
    if value is None:
        return None
    if _is_number(value):
        return None if pd.isna(value) else value

    text = clean_text(value)
    if not text or text == '-' or not _NUMBER_RE.match(text):
        return None
    return float(text) if '.' in text else int(text)


def to_optional_string(value: Any) -> Optional[str]:
    """Cleaned text, or None for empty cells and '-' placeholders"""
    if value is None:
        return None
    text = clean_text(value)
    return text if text and text != '-' else None


def normalize_cell(value: Any) -> CellValue:
    """Keep numbers, trim text, map empty text to None"""
    if value is None:
        return None
    if _is_number(value):
        return None if pd.isna(value) else value
    text = str(value).strip()
    return text or None


def normalize_player_display_name(value: Any) -> Optional[str]:
    """
    Convert "Last,First" into "First Last".

    Names without a comma only get their whitespace collapsed. A comma with
    nothing on one side leaves the cleaned input as-is.
    """
    clean = to_optional_string(value)
    if not clean:
        return None

    if ',' not in clean:
        return re.sub(r'\s+', ' ', clean).strip()

    last_name, _, first_name = clean.partition(',')
    last_name = last_name.strip()
    first_name = first_name.strip()
    if not first_name or not last_name:
        return re.sub(r'\s+', ' ', clean).strip()

    return re.sub(r'\s+', ' ', f"{first_name} {last_name}").strip()


def _collapse_word_runs(value: str) -> str:
    return re.sub(r'\s+', ' ', re.sub(r'[^\w]+', ' ', value.lower())).strip()


def normalize_name_key(value: Any) -> str:
    """Identity key for a person or team: display form, lowercased, punctuation dropped"""
    display = normalize_player_display_name(value)
    if display is None:
        display = '' if value is None else str(value)
    return _collapse_word_runs(display)


def normalize_play_text(value: Any) -> str:
    """Case and punctuation insensitive form of a play sentence"""
    return _collapse_word_runs('' if value is None else str(value))


def slug_for_id(value: Any) -> str:
    slug = re.sub(r'[^a-z0-9]+', '-', str(value).lower()).strip('-')
    return slug or 'unknown'


def ordinal(value: int) -> str:
    """1 -> 1st, 12 -> 12th, 22 -> 22nd"""
    remainder = value % 100
    if 11 <= remainder <= 13:
        return f"{value}th"
    suffix = {1: 'st', 2: 'nd', 3: 'rd'}.get(value % 10, 'th')
    return f"{value}{suffix}"


def parse_half_inning(value: Optional[str]) -> Tuple[Optional[str], Optional[int]]:
    """Parse 'Top 3rd' / 'Bot 5' into (half, inning)"""
    if not value:
        return None, None

    match = _HALF_INNING_RE.search(value)
    if not match:
        return None, None

    half = 'top' if match.group(1).lower().startswith('top') else 'bottom'
    return half, int(match.group(2))
