"""
Scorebook errors
================
Only hard failures raise. Content problems (missing tables, odd text) become
nulls, ``other`` outcomes or warnings instead.
"""


class ScorebookError(Exception):
    """Base class for errors raised to entry points"""


class UpstreamFetchError(ScorebookError):
    """Network, HTTP or decode failure talking to the stats provider"""

    def __init__(self, url: str, message: str):
        super().__init__(f"Failed to fetch {url}: {message}")
        self.url = url


class StateFileError(ScorebookError):
    """Feed state file is unreadable or belongs to another game"""


class PostError(ScorebookError):
    """The poster failed to publish a post"""
