"""
Configuration
=============
Settings read from environment variables (a local .env file is loaded first).
Command line flags override these values.
"""

import os
from typing import Optional

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

TRUTHY_VALUES = ('1', 'true', 'yes', 'on')


def parse_bool(value: Optional[str], default: bool) -> bool:
    """Unset or blank -> default; otherwise only 1/true/yes/on are true"""
    if value is None or not value.strip():
        return default
    return value.strip().lower() in TRUTHY_VALUES


def parse_int(value: Optional[str], default: int, minimum: Optional[int] = None) -> int:
    """Integer floored at minimum; without a minimum only positive values are kept"""
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        return default
    if minimum is not None:
        return max(minimum, number)
    return number if number >= 1 else default


def get_source_settings() -> dict:
    """
    Upstream stats provider settings.

    Returns:
        Dict with base_url, timeout, max_retries and the cache TTLs (seconds)
    """
    return {
        'base_url': os.getenv('STATS_BASE_URL', 'https://stats.statbroadcast.com/interface/webservice'),
        'timeout': parse_int(os.getenv('STATS_TIMEOUT_SECONDS'), 20, minimum=1),
        'max_retries': parse_int(os.getenv('STATS_MAX_RETRIES'), 3, minimum=1),
        'cache_ttl': {
            'event': parse_int(os.getenv('STATS_EVENT_CACHE_SECONDS'), 300, minimum=0),
            'live': parse_int(os.getenv('STATS_LIVE_CACHE_SECONDS'), 15, minimum=0),
            'final': parse_int(os.getenv('STATS_FINAL_CACHE_SECONDS'), 30, minimum=0),
        },
    }


def get_feed_settings() -> dict:
    """
    Live play feed settings.

    Returns:
        Dict with game_id, interval_seconds, final_grace_seconds, bootstrap,
        thread_mode, max_posts_per_cycle, post_final, append_tag and state_path
    """
    game_id = os.getenv('X_FEED_GAME_ID')
    thread_mode = (os.getenv('X_FEED_THREAD_MODE') or 'reply').strip().lower()
    bootstrap = (os.getenv('X_FEED_BOOTSTRAP') or 'latest').strip().lower()

    return {
        'game_id': parse_int(game_id, 0) or None,
        'interval_seconds': parse_int(os.getenv('X_FEED_INTERVAL_SECONDS'), 20, minimum=5),
        'final_grace_seconds': parse_int(os.getenv('X_FEED_FINAL_GRACE_SECONDS'), 120, minimum=30),
        'bootstrap': bootstrap if bootstrap in ('latest', 'all') else 'latest',
        'thread_mode': thread_mode if thread_mode in ('reply', 'none') else 'reply',
        'max_posts_per_cycle': parse_int(os.getenv('X_FEED_MAX_POSTS_PER_CYCLE'), 6, minimum=1),
        'post_final': parse_bool(os.getenv('X_FEED_POST_FINAL'), True),
        'append_tag': (os.getenv('X_FEED_APPEND_TAG') or '').strip() or None,
        'state_path': os.getenv('X_FEED_STATE_PATH') or None,
    }
