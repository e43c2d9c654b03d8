"""
Stats Provider Source
=====================
Fetches the provider's views for one game and assembles the live and final
bundles the pipeline consumes.

The provider's web service takes a base64 ``data`` parameter and answers
with a rot13'd base64 body. ``StatBroadcastClient`` hides that;
``StatsSource`` only needs two callables, so tests can hand it canned HTML.
"""

import base64
import binascii
import codecs
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional

from scorebook.errors import UpstreamFetchError
from scorebook.parsing.events_parser import parse_inning_play_by_play, parse_scoring_plays
from scorebook.parsing.game_metadata_parser import (
    EventMeta,
    LiveSummary,
    determine_final_status,
    determine_winner,
    extract_game_information,
    list_game_innings,
    parse_event_xml,
    parse_live_summary,
    parse_lineups,
    parse_pitcher_decisions,
)
from scorebook.parsing.parsing_utils import clean_text
from scorebook.parsing.tables import StatsSection, find_section, first_table, parse_stats_sections
from scorebook.pipeline.scorekeeping import FinalGame, FinalScore, TeamStats
from scorebook.utils.concurrency import run_with_concurrency
from scorebook.utils.url_cacher import CachedPageFetcher, TtlCache

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = 'https://stats.statbroadcast.com/interface/webservice'
INNING_FETCH_WORKERS = 4
FINAL_GAME_CACHE_SECONDS = 30

BASEBALL_VIEW_XSL = {
    'game': 'baseball/sb.bsgame.views.broadcast.xsl',
    'lineups': 'baseball/sb.bsgame.views.lineups.xsl',
    'away_box': 'baseball/sb.bsgame.views.box.xsl&params={"team":"V"}',
    'home_box': 'baseball/sb.bsgame.views.box.xsl&params={"team":"H"}',
    'compare': 'baseball/sb.bsgame.views.teamcompare.xsl',
    'scoring': 'baseball/sb.bsgame.views.scoring.xsl',
    'plays': 'baseball/sb.bsgame.views.pxp.xsl',
    'scorecard_away': 'baseball/sb.bsgame.views.scorecard.xsl&params={"team":"V"}',
    'scorecard_home': 'baseball/sb.bsgame.views.scorecard.xsl&params={"team":"H"}',
    'away_season': 'baseball/sb.bsgame.views.season.xsl&params={"team":"V"}',
    'home_season': 'baseball/sb.bsgame.views.season.xsl&params={"team":"H"}',
    'notes': 'baseball/sb.bsgame.views.notes.xsl',
}

FINAL_GAME_VIEWS = ['game', 'lineups', 'away_box', 'home_box', 'scoring', 'notes']


@dataclass(frozen=True)
class LiveStats:
    id: int
    view: str
    event: EventMeta
    summary: LiveSummary
    sections: List[StatsSection]
    fetched_at: str


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# =============================================================================
# Provider wire format
# =============================================================================

def normalize_view_key(view: Optional[str]) -> str:
    return clean_text(view).lower() or 'game'


def resolve_xsl_for_view(sport: str, view: Optional[str]) -> str:
    """Stylesheet for a view; 'plays_inning_N' selects one inning's play-by-play"""
    view = normalize_view_key(view)

    if view.startswith('plays_inning_'):
        suffix = view[len('plays_inning_'):]
        if re.fullmatch(r'[0-9]+', suffix) and 0 < int(suffix) < 30:
            return f'baseball/sb.bsgame.views.pxp.xsl&params={{"inn":{int(suffix)}}}'

    return BASEBALL_VIEW_XSL.get(view, BASEBALL_VIEW_XSL['game'])


def encode_service_data(data: str) -> str:
    return base64.b64encode(data.encode('utf-8')).decode('ascii')


def decode_service_payload(body: str) -> str:
    """
    rot13 then base64-decode a service response

    Raises:
        ValueError: when the body is not valid encoded text
    """
    try:
        return base64.b64decode(codecs.encode(body.strip(), 'rot_13')).decode('utf-8')
    except (binascii.Error, UnicodeDecodeError) as e:
        raise ValueError(f"Failed to decode service payload: {e}") from e


class StatBroadcastClient:
    """Event lookups and view HTML from the provider web service"""

    def __init__(self, fetcher: Optional[CachedPageFetcher] = None, base_url: str = DEFAULT_BASE_URL):
        self.fetcher = fetcher or CachedPageFetcher()
        self.base_url = base_url.rstrip('/')

    def service_call(self, path: str, data: str, category: str) -> str:
        url = f"{self.base_url}/{path}"
        body = self.fetcher.fetch_text(url, params={'data': encode_service_data(data)}, category=category)
        try:
            return decode_service_payload(body)
        except ValueError as e:
            raise UpstreamFetchError(url, str(e)) from e

    def fetch_event_xml(self, game_id: int) -> str:
        return self.service_call(f"event/{game_id}", 'type=statbroadcast', 'event')

    def fetch_view(self, event: EventMeta, view: str) -> str:
        data = (
            f"event={event.id}"
            f"&xml={event.xml_file}"
            f"&xsl={resolve_xsl_for_view(event.sport, view)}"
            f"&sport={event.sport}"
            "&filetime=1"
            "&type=statbroadcast"
        )
        category = 'final' if event.completed else 'live'
        return self.service_call('stats', data, category)


# =============================================================================
# Bundle assembly
# =============================================================================

def build_team_stats(sections: List[StatsSection]) -> TeamStats:
    """Box score and pitching tables from one team's box view"""
    return TeamStats(
        sections=sections,
        box_score=first_table(find_section(sections, r'box score')),
        pitching=first_table(find_section(sections, r'pitching stats')),
    )


class StatsSource:
    """
    Live and final game bundles for the pipeline.

    Args:
        fetch_event_xml: game id -> event lookup XML
        fetch_view: (event, view key) -> view HTML
        final_cache_seconds: How long a final bundle is reused
        max_workers: Pool size for the per-inning fan-out
    """

    def __init__(
        self,
        fetch_event_xml: Callable[[int], str],
        fetch_view: Callable[[EventMeta, str], str],
        final_cache_seconds: float = FINAL_GAME_CACHE_SECONDS,
        max_workers: int = INNING_FETCH_WORKERS,
    ):
        self.fetch_event_xml = fetch_event_xml
        self.fetch_view = fetch_view
        self.final_cache_seconds = final_cache_seconds
        self.max_workers = max_workers
        self._final_cache = TtlCache()

    @classmethod
    def from_settings(cls, settings: dict) -> 'StatsSource':
        fetcher = CachedPageFetcher(
            timeout=settings['timeout'],
            max_retries=settings['max_retries'],
            cache_expiry=settings['cache_ttl'],
        )
        client = StatBroadcastClient(fetcher, settings['base_url'])
        return cls(client.fetch_event_xml, client.fetch_view, settings['cache_ttl']['final'])

    def get_event(self, game_id: int) -> EventMeta:
        try:
            return parse_event_xml(game_id, self.fetch_event_xml(game_id))
        except ValueError as e:
            raise UpstreamFetchError(f"event/{game_id}", str(e)) from e

    def get_live_summary(self, game_id: int) -> LiveSummary:
        event = self.get_event(game_id)
        return parse_live_summary(event, self.fetch_view(event, 'game'))

    def get_live_stats(self, game_id: int, view: str = 'game') -> LiveStats:
        view = normalize_view_key(view)
        event = self.get_event(game_id)
        html = self.fetch_view(event, view)

        return LiveStats(
            id=game_id,
            view=view,
            event=event,
            summary=parse_live_summary(event, html),
            sections=parse_stats_sections(html),
            fetched_at=_now_iso(),
        )

    def get_final_game(self, game_id: int) -> FinalGame:
        """
        Fetch and assemble the final game bundle.

        Innings are fetched in parallel and returned in inning order.

        Raises:
            UpstreamFetchError: when any view cannot be fetched
        """
        cached = self._final_cache.get(game_id)
        if cached is not None:
            return cached

        event = self.get_event(game_id)
        pages = dict(zip(FINAL_GAME_VIEWS, run_with_concurrency(
            FINAL_GAME_VIEWS, len(FINAL_GAME_VIEWS), lambda view: self.fetch_view(event, view)
        )))

        summary = parse_live_summary(event, pages['game'])
        visitor_stats = build_team_stats(parse_stats_sections(pages['away_box']))
        home_stats = build_team_stats(parse_stats_sections(pages['home_box']))
        pitcher_decisions = parse_pitcher_decisions(visitor_stats.pitching, home_stats.pitching)

        innings = list_game_innings(summary.line_score)
        logger.info(f"Game {game_id}: fetching play-by-play for {len(innings)} innings")
        play_by_play = run_with_concurrency(
            innings,
            self.max_workers,
            lambda inning: parse_inning_play_by_play(
                inning, parse_stats_sections(self.fetch_view(event, f"plays_inning_{inning}"))
            ),
        )

        final_game = FinalGame(
            id=game_id,
            event=event,
            status=determine_final_status(summary, pitcher_decisions),
            summary=summary,
            final_score=FinalScore(
                visitor_team=summary.visitor_team,
                home_team=summary.home_team,
                visitor_score=summary.visitor_score,
                home_score=summary.home_score,
                winner=determine_winner(summary.visitor_score, summary.home_score),
            ),
            pitcher_decisions=pitcher_decisions,
            lineups=parse_lineups(parse_stats_sections(pages['lineups']), summary),
            visitor_stats=visitor_stats,
            home_stats=home_stats,
            scoring_plays=parse_scoring_plays(parse_stats_sections(pages['scoring'])),
            play_by_play_by_inning=sorted(play_by_play, key=lambda block: block.inning),
            game_information=extract_game_information(parse_stats_sections(pages['notes'])),
            fetched_at=_now_iso(),
        )

        self._final_cache.set(game_id, final_game, self.final_cache_seconds)
        return final_game
