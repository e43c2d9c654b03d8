"""
Live Play Feed
==============
Polls a live game and posts one short message per new play, then a final
score post once the game is over.

Progress lives in a JSON state file so a restarted feed never re-posts a play.

Usage:
    scorebook-feed --id 636528 --dry-run --once
    scorebook-feed --id 636528 --interval 20 --tag "#NCAABaseball"
"""

import argparse
import json
import logging
import os
import sys
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional

from scorebook.config import get_feed_settings, get_source_settings, parse_int
from scorebook.errors import PostError, ScorebookError, StateFileError
from scorebook.parsing.events_parser import extract_live_play_events
from scorebook.parsing.game_metadata_parser import PitcherDecisions, is_final_status
from scorebook.pipeline.game_source import StatsSource
from scorebook.pipeline.play_state import derive_live_play_states, detect_likely_final_from_plays
from scorebook.pipeline.tweet_formatter import build_final_tweet_text, build_play_tweet_text

logger = logging.getLogger(__name__)

MAX_STORED_KEYS = 20000
STATE_VERSION = 1
MIN_INTERVAL_SECONDS = 5
MIN_FINAL_GRACE_SECONDS = 30

# (text, reply_to) -> id of the created post
Poster = Callable[[str, Optional[str]], str]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime) -> str:
    return value.isoformat()


def _single_line(text: str, limit: int = 140) -> str:
    return ' '.join(text.split())[:limit]


# =============================================================================
# State file
# =============================================================================

@dataclass
class FeedState:
    game_id: int
    created_at: str
    updated_at: str
    bootstrapped: bool = False
    posted_play_keys: List[str] = field(default_factory=list)
    last_tweet_id: Optional[str] = None
    root_tweet_id: Optional[str] = None
    final_posted: bool = False
    final_candidate_at: Optional[str] = None
    version: int = STATE_VERSION

    @classmethod
    def fresh(cls, game_id: int, now: Optional[datetime] = None) -> 'FeedState':
        stamp = _iso(now or _now())
        return cls(game_id=game_id, created_at=stamp, updated_at=stamp)

    def to_dict(self) -> dict:
        return {
            'version': self.version,
            'gameId': self.game_id,
            'createdAt': self.created_at,
            'updatedAt': self.updated_at,
            'bootstrapped': self.bootstrapped,
            'postedPlayKeys': list(self.posted_play_keys),
            'lastTweetId': self.last_tweet_id,
            'rootTweetId': self.root_tweet_id,
            'finalPosted': self.final_posted,
            'finalCandidateAt': self.final_candidate_at,
        }


def compact_posted_keys(keys: List[str]) -> List[str]:
    """Unique keys in first-seen order, keeping only the newest MAX_STORED_KEYS"""
    unique = list(dict.fromkeys(keys))
    if len(unique) <= MAX_STORED_KEYS:
        return unique
    return unique[len(unique) - MAX_STORED_KEYS:]


def _optional_str(value) -> Optional[str]:
    return value if isinstance(value, str) else None


def load_state(path: str, game_id: int) -> FeedState:
    """
    Read the feed state for a game, or start a fresh one.

    Args:
        path: State file path
        game_id: Game the feed is running for

    Returns:
        FeedState (fresh when the file does not exist)

    Raises:
        StateFileError: when the file is not valid JSON or belongs to another game
    """
    try:
        with open(path, 'r', encoding='utf-8') as f:
            raw = json.load(f)
    except FileNotFoundError:
        logger.info(f"No state file at {path}; starting fresh for game {game_id}")
        return FeedState.fresh(game_id)
    except (OSError, json.JSONDecodeError) as e:
        raise StateFileError(f"Could not read state file {path}: {e}") from e

    if not isinstance(raw, dict):
        raise StateFileError(f"State file {path} does not hold a JSON object")
    if raw.get('gameId') != game_id:
        raise StateFileError(
            f"State file {path} is for game {raw.get('gameId')}, but game {game_id} was requested"
        )

    stamp = _iso(_now())
    posted = raw.get('postedPlayKeys')
    return FeedState(
        game_id=game_id,
        created_at=raw.get('createdAt') or stamp,
        updated_at=raw.get('updatedAt') or stamp,
        bootstrapped=bool(raw.get('bootstrapped')),
        posted_play_keys=compact_posted_keys(posted if isinstance(posted, list) else []),
        last_tweet_id=_optional_str(raw.get('lastTweetId')),
        root_tweet_id=_optional_str(raw.get('rootTweetId')),
        final_posted=bool(raw.get('finalPosted')),
        final_candidate_at=_optional_str(raw.get('finalCandidateAt')),
    )


def save_state(path: str, state: FeedState) -> None:
    """Write the whole state file, creating its directory if needed"""
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, 'w', encoding='utf-8') as f:
        json.dump(state.to_dict(), f, indent=2)


def default_state_path(game_id: int) -> str:
    return os.path.join('data', 'tmp', 'x-feed', f"statbroadcast-{game_id}.json")


# =============================================================================
# Posting
# =============================================================================

class DryRunPoster:
    """Logs posts instead of sending them; ids look like dry-run-<ms>-<n>"""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self.count = 0
        self.posts: List[dict] = []

    def __call__(self, text: str, reply_to: Optional[str] = None) -> str:
        self.count += 1
        post_id = f"dry-run-{int(self._clock() * 1000)}-{self.count}"
        self.posts.append({'id': post_id, 'text': text, 'reply_to': reply_to})

        suffix = f" (reply {reply_to})" if reply_to else ''
        logger.info(f"[dry-run] {post_id}{suffix}")
        return post_id


@dataclass
class FeedOptions:
    game_id: int
    interval_seconds: int = 20
    final_grace_seconds: int = 120
    state_path: Optional[str] = None
    once: bool = False
    dry_run: bool = False
    bootstrap: str = 'latest'
    thread_mode: str = 'reply'
    max_posts_per_cycle: int = 6
    post_final: bool = True
    append_tag: Optional[str] = None


def _post(poster: Poster, options: FeedOptions, state: FeedState, text: str) -> str:
    reply_to = state.last_tweet_id if options.thread_mode == 'reply' else None
    try:
        post_id = poster(text, reply_to)
    except Exception as e:
        raise PostError(f"Post failed: {e}") from e
    if not state.root_tweet_id:
        state.root_tweet_id = post_id
    state.last_tweet_id = post_id
    return post_id


def resolve_final_pitcher_decisions(source: StatsSource, game_id: int) -> Optional[PitcherDecisions]:
    """Decisions from the final bundle; None (and a warning) when it cannot be fetched"""
    try:
        return source.get_final_game(game_id).pitcher_decisions
    except ScorebookError as e:
        logger.warning(f"[final] Could not load pitcher decisions for game {game_id}: {e}")
        return None


def _grace_satisfied(state: FeedState, now: datetime, grace_seconds: int) -> bool:
    if not state.final_candidate_at:
        return False
    try:
        candidate_at = datetime.fromisoformat(state.final_candidate_at)
    except ValueError:
        logger.warning(f"Ignoring unreadable final candidate time: {state.final_candidate_at}")
        return False
    if candidate_at.tzinfo is None:
        candidate_at = candidate_at.replace(tzinfo=timezone.utc)
    return (now - candidate_at).total_seconds() >= grace_seconds


# =============================================================================
# Cycle
# =============================================================================

def run_cycle(
    options: FeedOptions,
    state: FeedState,
    source: StatsSource,
    poster: Poster,
    now: Optional[datetime] = None,
) -> bool:
    """
    One poll: post new plays, track the final candidate, post the final.

    Args:
        options: Feed options
        state: Feed state, updated in place
        source: Live and final game data
        poster: Sends one post and returns its id
        now: Current time (UTC) for the final grace window

    Returns:
        True when the game is over and everything has been posted
    """
    now = now or _now()
    game_id = options.game_id

    summary = source.get_live_summary(game_id)
    live_stats = source.get_live_stats(game_id, 'plays')
    plays = extract_live_play_events(live_stats.sections)
    play_states = derive_live_play_states(plays, summary)

    posted = set(state.posted_play_keys)

    # ===== Bootstrap =====
    if not state.bootstrapped:
        state.bootstrapped = True

        if options.bootstrap == 'latest' and plays:
            state.posted_play_keys = compact_posted_keys(state.posted_play_keys + [play.key for play in plays])
            state.updated_at = _iso(now)
            logger.info(f"[bootstrap] Seeded {len(plays)} existing plays for game {game_id}")
            return False

    # ===== New plays =====
    unposted = [play for play in plays if play.key not in posted]
    for play in unposted[:options.max_posts_per_cycle]:
        text = build_play_tweet_text(
            play,
            summary,
            state_after_play=play_states.get(play.key),
            append_tag=options.append_tag,
        )
        _post(poster, options, state, text)

        posted.add(play.key)
        state.posted_play_keys = compact_posted_keys(state.posted_play_keys + [play.key])
        logger.info(f"[play] {play.key} | {_single_line(text)}")

    # ===== Final detection =====
    pending_plays = any(play.key not in posted for play in plays)
    official_final = is_final_status(summary)
    likely_final = detect_likely_final_from_plays(plays, play_states)

    if official_final:
        state.final_candidate_at = None
    elif likely_final:
        if not state.final_candidate_at:
            state.final_candidate_at = _iso(now)
            logger.info(
                f"[final-candidate] Likely final play detected for game {game_id}; "
                f"waiting {options.final_grace_seconds}s confirmation window"
            )
    else:
        state.final_candidate_at = None

    grace_satisfied = _grace_satisfied(state, now, options.final_grace_seconds)
    game_over = official_final or (likely_final and grace_satisfied)

    # ===== Final post =====
    if options.post_final and not state.final_posted and not pending_plays and game_over:
        text = build_final_tweet_text(
            summary,
            resolve_final_pitcher_decisions(source, game_id),
            append_tag=options.append_tag,
        )
        _post(poster, options, state, text)
        state.final_posted = True
        state.final_candidate_at = None
        logger.info(f"[final] {_single_line(text)}")

    state.updated_at = _iso(now)
    return game_over and (not options.post_final or state.final_posted) and not pending_plays


def run_feed(
    options: FeedOptions,
    source: StatsSource,
    poster: Poster,
    sleep: Callable[[float], None] = time.sleep,
) -> FeedState:
    """
    Poll until the game is over (or once with options.once).

    Upstream and post failures in a cycle are logged and retried next
    interval; the state file is written after every cycle.

    Raises:
        StateFileError: when the state file cannot be used
    """
    state_path = options.state_path or default_state_path(options.game_id)
    state = load_state(state_path, options.game_id)

    while True:
        should_exit = False
        try:
            should_exit = run_cycle(options, state, source, poster)
        except ScorebookError as e:
            logger.error(f"Cycle failed for game {options.game_id}: {e}")
        finally:
            save_state(state_path, state)

        if options.once or should_exit:
            return state

        sleep(options.interval_seconds)


# =============================================================================
# Command line
# =============================================================================

def _positive_int(value: str) -> int:
    number = parse_int(value, 0)
    if number < 1:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value!r}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Post live play-by-play for one game')
    parser.add_argument('--id', type=_positive_int, dest='game_id', help='Provider game id (or X_FEED_GAME_ID)')
    parser.add_argument('--interval', type=_positive_int, help='Seconds between polls (minimum 5)')
    parser.add_argument('--final-grace', type=_positive_int, help='Seconds to confirm a likely final (minimum 30)')
    parser.add_argument('--state', help='State file path')
    parser.add_argument('--once', action='store_true', help='Run one cycle and exit')
    parser.add_argument('--dry-run', action='store_true', help='Log posts instead of sending them')
    parser.add_argument('--bootstrap', choices=['latest', 'all'], help='latest skips plays already on the page')
    parser.add_argument('--thread-mode', choices=['reply', 'none'], help='Reply-chain posts or post standalone')
    parser.add_argument('--max-posts', type=_positive_int, help='Play posts per cycle')
    parser.add_argument('--post-final', dest='post_final', action='store_true', default=None,
                        help='Post the final score (default)')
    parser.add_argument('--no-post-final', dest='post_final', action='store_false',
                        help='Skip the final score post')
    parser.add_argument('--tag', help='Hashtag block appended to every post')
    return parser


def options_from_args(args: argparse.Namespace, settings: dict) -> FeedOptions:
    """Command line flags over environment settings"""
    game_id = args.game_id or settings['game_id']
    if not game_id:
        raise ValueError('Missing required --id <game id> (or X_FEED_GAME_ID env var)')

    def pick(flag, key):
        return flag if flag is not None else settings[key]

    tag = pick(args.tag, 'append_tag')
    return FeedOptions(
        game_id=game_id,
        interval_seconds=max(MIN_INTERVAL_SECONDS, pick(args.interval, 'interval_seconds')),
        final_grace_seconds=max(MIN_FINAL_GRACE_SECONDS, pick(args.final_grace, 'final_grace_seconds')),
        state_path=args.state or settings['state_path'] or default_state_path(game_id),
        once=args.once,
        dry_run=args.dry_run,
        bootstrap=pick(args.bootstrap, 'bootstrap'),
        thread_mode=pick(args.thread_mode, 'thread_mode'),
        max_posts_per_cycle=pick(args.max_posts, 'max_posts_per_cycle'),
        post_final=pick(args.post_final, 'post_final'),
        append_tag=(tag or '').strip() or None,
    )


def main(argv: Optional[List[str]] = None, poster: Optional[Poster] = None) -> int:
    """Command line entry point; pass a poster to send real posts"""
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        logging.basicConfig(
            level=logging.INFO,
            format='%(asctime)s - %(levelname)s - %(message)s'
        )

    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        options = options_from_args(args, get_feed_settings())
    except ValueError as e:
        parser.error(str(e))

    if options.dry_run or poster is None:
        if not options.dry_run:
            logger.warning("No poster configured; running in dry-run mode")
        poster = DryRunPoster()

    source = StatsSource.from_settings(get_source_settings())

    try:
        run_feed(options, source, poster)
    except ScorebookError as e:
        logger.error(f"Feed failed: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
