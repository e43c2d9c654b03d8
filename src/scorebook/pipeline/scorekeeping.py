"""
Final Game Scorekeeping
=======================
Builds one unified scorekeeping document for a completed game.

Inputs are the final-game bundle: line score, both box scores, the scoring
summary and every inning's play-by-play. Play-by-play rows become unified
plays; scoring summary rows are matched onto them (exact text first, then
batter + pitcher + runs) and any scoring row left over is emitted on its own.

Missing tables and sections degrade to nulls and empty lists; data quality
issues go to ``warnings`` instead of raising.
"""

import logging
import re
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Set

from scorebook.parsing.appearances_parser import BattingLine, PitchingLine, parse_batting_table, parse_pitching_table
from scorebook.parsing.events_parser import InningPlayByPlay, PlayByPlayRow, ScoringPlayRow
from scorebook.parsing.game_metadata_parser import (
    EventMeta,
    LineupEntry,
    LiveSummary,
    ParsedLineScore,
    PitcherDecision,
    PitcherDecisions,
    build_line_score,
    clean_team_short_name,
)
from scorebook.parsing.name_to_id_mapper import PlayerRegistry
from scorebook.parsing.outcome_analyzer import (
    FieldLocation,
    PitchContext,
    PlayOutcome,
    ScoringDecisionContext,
    count_runs_scored,
    parse_pitch_context,
    parse_play_description,
    resolve_scoring_decision_context,
)
from scorebook.parsing.parsing_utils import (
    CellValue,
    normalize_name_key,
    normalize_play_text,
    normalize_player_display_name,
    parse_half_inning,
    parse_integer,
    slug_for_id,
    to_optional_string,
)
from scorebook.parsing.tables import StatsSection, StatsTable
from scorebook.validation.stat_validator import validate_batting_totals, validate_runs_by_inning

logger = logging.getLogger(__name__)

SCHEMA_VERSION = '2.0.0'
PARSER_VERSION = '2.0.0'

_TEXT_LOCATION_HINT_RE = re.compile(r'(?:to|into|toward)\s+[a-z0-9]+', re.IGNORECASE)


# =============================================================================
# Final game bundle
# =============================================================================

@dataclass(frozen=True)
class FinalScore:
    visitor_team: str
    home_team: str
    visitor_score: Optional[int]
    home_score: Optional[int]
    winner: Optional[str]  # visitor | home | None


@dataclass(frozen=True)
class TeamStats:
    sections: List[StatsSection] = field(default_factory=list)
    box_score: Optional[StatsTable] = None
    pitching: Optional[StatsTable] = None


@dataclass(frozen=True)
class FinalGame:
    """Everything fetched for one completed game"""
    id: int
    event: EventMeta
    status: str  # final | not_final | unknown
    summary: LiveSummary
    final_score: FinalScore
    pitcher_decisions: PitcherDecisions
    lineups: Dict[str, List[LineupEntry]]
    visitor_stats: TeamStats
    home_stats: TeamStats
    scoring_plays: List[ScoringPlayRow]
    play_by_play_by_inning: List[InningPlayByPlay]
    game_information: Dict[str, CellValue] = field(default_factory=dict)
    fetched_at: Optional[str] = None


# =============================================================================
# Unified play model
# =============================================================================

@dataclass(frozen=True)
class ScoringEvent:
    inning: Optional[int]
    half: Optional[str]
    batting_team: Optional[str]
    batter: Optional[str]
    pitcher: Optional[str]
    outs: Optional[int]
    text: str
    scoring_decision: Optional[str]
    decision_context: Optional[ScoringDecisionContext]
    outcome: PlayOutcome
    tags: List[str]
    pitch_context: Optional[PitchContext]
    runs_scored: int


@dataclass(frozen=True)
class PlayParticipants:
    batter_id: Optional[str]
    batter_name: Optional[str]
    pitcher_id: Optional[str]
    pitcher_name: Optional[str]


@dataclass(frozen=True)
class PlayResult:
    outcome: PlayOutcome
    tags: List[str]
    runs_scored: int
    is_scoring_play: bool
    outs_after_play: Optional[int]


@dataclass(frozen=True)
class PlayScoring:
    decision_raw: Optional[str]
    decision_context: Optional[ScoringDecisionContext]


@dataclass(frozen=True)
class BattedBall:
    fielder_codes: List[int]
    field_locations: List[FieldLocation]
    location_source: str
    location_confidence: float


@dataclass(frozen=True)
class UnifiedPlay:
    play_id: str
    source: str  # play_by_play | scoring_summary
    inning: Optional[int]
    half: Optional[str]
    order: Optional[int]
    batting_side: Optional[str]
    batting_team: Optional[str]
    text: str
    participants: PlayParticipants
    pitch_context: Optional[PitchContext]
    result: PlayResult
    scoring: PlayScoring
    batted_ball: BattedBall


def _batted_ball(context: Optional[ScoringDecisionContext]) -> BattedBall:
    if context is None:
        return BattedBall(fielder_codes=[], field_locations=[], location_source='none', location_confidence=0.0)
    return BattedBall(
        fielder_codes=list(context.fielder_codes),
        field_locations=list(context.field_locations),
        location_source=context.location_source,
        location_confidence=context.location_confidence,
    )


def _pitching_side(batting_side: Optional[str]) -> Optional[str]:
    if batting_side == 'away':
        return 'home'
    if batting_side == 'home':
        return 'away'
    return None


def _register_participants(
    registry: PlayerRegistry,
    batting_side: Optional[str],
    batter: Optional[str],
    pitcher: Optional[str],
) -> PlayParticipants:
    pitching_side = _pitching_side(batting_side)
    return PlayParticipants(
        batter_id=registry.register(batting_side, batter) if batter and batting_side else None,
        batter_name=normalize_player_display_name(batter),
        pitcher_id=registry.register(pitching_side, pitcher, None, 'p') if pitcher and pitching_side else None,
        pitcher_name=normalize_player_display_name(pitcher),
    )


# =============================================================================
# Scoring timeline
# =============================================================================

def parse_scoring_event(play: ScoringPlayRow) -> ScoringEvent:
    half, inning = parse_half_inning(play.inning)
    parsed = parse_play_description(play.play)

    return ScoringEvent(
        inning=inning,
        half=half,
        batting_team=play.team,
        batter=normalize_player_display_name(play.batter),
        pitcher=normalize_player_display_name(play.pitcher),
        outs=play.outs,
        text=play.play,
        scoring_decision=play.scoring_decision,
        decision_context=resolve_scoring_decision_context(play.scoring_decision, play.play),
        outcome=parsed.outcome,
        tags=parsed.tags,
        pitch_context=parse_pitch_context(play.play),
        runs_scored=count_runs_scored(play.play),
    )


def find_matching_scoring_event_index(
    scoring_timeline: Sequence[ScoringEvent],
    used: Set[int],
    inning: int,
    half: Optional[str],
    event: PlayByPlayRow,
) -> Optional[int]:
    """
    Index of the first unused scoring event for this play, or None.

    Tier one compares normalized play text; tier two compares normalized
    batter, pitcher and runs scored. Both only look inside the same
    inning and half.
    """
    candidates = [
        index for index, scoring in enumerate(scoring_timeline)
        if index not in used and scoring.inning == inning and scoring.half == half
    ]

    event_text = normalize_play_text(event.text)
    for index in candidates:
        if normalize_play_text(scoring_timeline[index].text) == event_text:
            return index

    event_batter = normalize_name_key(event.batter)
    event_pitcher = normalize_name_key(event.pitcher)
    event_runs = count_runs_scored(event.text)
    for index in candidates:
        scoring = scoring_timeline[index]
        if (normalize_name_key(scoring.batter) == event_batter
                and normalize_name_key(scoring.pitcher) == event_pitcher
                and scoring.runs_scored == event_runs):
            return index

    return None


# =============================================================================
# Team tokens
# =============================================================================

def build_team_token_lookup(final_game: FinalGame, away_short_name: Optional[str],
                            home_short_name: Optional[str]) -> Dict[str, str]:
    """Normalized team label -> side, from every name the game carries"""
    lookup = {}

    def add(token: Optional[str], side: str) -> None:
        normalized = normalize_name_key(token)
        if normalized:
            lookup[normalized] = side

    add(final_game.final_score.visitor_team, 'away')
    add(final_game.final_score.home_team, 'home')
    add(away_short_name, 'away')
    add(home_short_name, 'home')
    add(final_game.event.visitor_name, 'away')
    add(final_game.event.home_name, 'home')

    line_score = final_game.summary.line_score
    if line_score is not None:
        for side, row in zip(('away', 'home'), line_score.rows):
            add(row.team, side)

    return lookup


def resolve_side_from_team_token(token: Optional[str], lookup: Dict[str, str]) -> Optional[str]:
    normalized = normalize_name_key(token)
    return lookup.get(normalized) if normalized else None


# =============================================================================
# Unified plays
# =============================================================================

def build_unified_plays(
    final_game: FinalGame,
    scoring_timeline: Sequence[ScoringEvent],
    registry: PlayerRegistry,
    team_lookup: Dict[str, str],
    warnings: List[str],
) -> List[UnifiedPlay]:
    """
    Play-by-play rows in inning order, then unmatched scoring summary rows.

    Args:
        final_game: Final game bundle
        scoring_timeline: Parsed scoring summary rows
        registry: Player registry; batters and pitchers are registered as seen
        team_lookup: Team token -> side, for scoring summary team labels
        warnings: Appended to for scoring rows with unparsed location text

    Returns:
        List of UnifiedPlay
    """
    plays = []
    used_scoring: Set[int] = set()
    teams = {'away': final_game.final_score.visitor_team, 'home': final_game.final_score.home_team}

    for inning_block in final_game.play_by_play_by_inning:
        current_half = None
        order = 0

        for event in inning_block.events:
            if event.type == 'half':
                current_half = event.half
            if event.type != 'play':
                continue

            order += 1
            batting_side = {'top': 'away', 'bottom': 'home'}.get(current_half)
            parsed = parse_play_description(event.text)
            runs_scored = count_runs_scored(event.text)

            match_index = find_matching_scoring_event_index(
                scoring_timeline, used_scoring, inning_block.inning, current_half, event
            )
            scoring_match = scoring_timeline[match_index] if match_index is not None else None
            if match_index is not None:
                used_scoring.add(match_index)

            if scoring_match is not None and scoring_match.decision_context is not None:
                context = scoring_match.decision_context
            else:
                context = resolve_scoring_decision_context(None, event.text)

            plays.append(UnifiedPlay(
                play_id=f"P-{inning_block.inning}-{current_half or 'u'}-{order}",
                source='play_by_play',
                inning=inning_block.inning,
                half=current_half,
                order=order,
                batting_side=batting_side,
                batting_team=teams.get(batting_side),
                text=event.text,
                participants=_register_participants(registry, batting_side, event.batter, event.pitcher),
                pitch_context=parse_pitch_context(event.text),
                result=PlayResult(
                    outcome=parsed.outcome,
                    tags=parsed.tags,
                    runs_scored=runs_scored,
                    is_scoring_play=scoring_match is not None or runs_scored > 0,
                    outs_after_play=event.outs,
                ),
                scoring=PlayScoring(
                    decision_raw=scoring_match.scoring_decision if scoring_match else None,
                    decision_context=context,
                ),
                batted_ball=_batted_ball(context),
            ))

    for index, scoring_play in enumerate(scoring_timeline):
        if index in used_scoring:
            continue

        batting_side = resolve_side_from_team_token(scoring_play.batting_team, team_lookup)
        context = scoring_play.decision_context

        if not (context and context.field_locations) and _TEXT_LOCATION_HINT_RE.search(scoring_play.text):
            message = f'Scoring summary play {index + 1} had textual location but no parsed location: "{scoring_play.text}"'
            logger.warning(message)
            warnings.append(message)

        plays.append(UnifiedPlay(
            play_id=f"S-{index + 1}",
            source='scoring_summary',
            inning=scoring_play.inning,
            half=scoring_play.half,
            order=None,
            batting_side=batting_side,
            batting_team=scoring_play.batting_team,
            text=scoring_play.text,
            participants=_register_participants(registry, batting_side, scoring_play.batter, scoring_play.pitcher),
            pitch_context=scoring_play.pitch_context,
            result=PlayResult(
                outcome=scoring_play.outcome,
                tags=scoring_play.tags,
                runs_scored=scoring_play.runs_scored,
                is_scoring_play=True,
                outs_after_play=scoring_play.outs,
            ),
            scoring=PlayScoring(decision_raw=scoring_play.scoring_decision, decision_context=context),
            batted_ball=_batted_ball(context),
        ))

    return plays


def build_play_ids_by_inning(plays: Sequence[UnifiedPlay]) -> Dict[str, List[str]]:
    result: Dict[str, List[str]] = {}
    for play in plays:
        key = 'unknown' if play.inning is None else str(play.inning)
        result.setdefault(key, []).append(play.play_id)
    return result


# =============================================================================
# Document assembly
# =============================================================================

def normalize_pitcher_decision(decision: Optional[PitcherDecision]) -> Optional[Dict[str, Any]]:
    if decision is None:
        return None
    record = asdict(decision)
    record['player'] = normalize_player_display_name(decision.player) or decision.player
    return record


def _team_snapshot(
    side: str,
    name: str,
    short_name: Optional[str],
    final_score: Optional[int],
    is_winner: bool,
    line_score: ParsedLineScore,
    batting: List[BattingLine],
    pitching: List[PitchingLine],
) -> Dict[str, Any]:
    return {
        'team_id': f"{side}:{slug_for_id(name)}",
        'side': side,
        'name': name,
        'short_name': short_name,
        'final_score': final_score,
        'is_winner': is_winner,
        'line_score': {
            'innings': line_score.innings,
            'runs_by_inning': line_score.away_by_inning if side == 'away' else line_score.home_by_inning,
            'totals': asdict(line_score.away_totals if side == 'away' else line_score.home_totals),
        },
        'box_score': {
            'batting': [asdict(line) for line in batting],
            'pitching': [asdict(line) for line in pitching],
        },
    }


def _info_value(info: Dict[str, CellValue], *keys: str) -> CellValue:
    for key in keys:
        if info.get(key) is not None:
            return info[key]
    return None


def build_scorekeeping_data(final_game: FinalGame) -> Dict[str, Any]:
    """
    Build the unified scorekeeping document for a final game.

    Args:
        final_game: Final game bundle

    Returns:
        Dict with schema_version, parser_version, generated_at, game, teams,
        participants, decisions, plays, indexes and warnings
    """
    warnings: List[str] = []
    info = final_game.game_information or {}
    line_score = build_line_score(final_game.summary.line_score)

    rows = final_game.summary.line_score.rows if final_game.summary.line_score else []
    away_short_name = clean_team_short_name(rows[0].team) if len(rows) > 0 else None
    home_short_name = clean_team_short_name(rows[1].team) if len(rows) > 1 else None

    registry = PlayerRegistry()
    away_batting = parse_batting_table(final_game.visitor_stats.box_score, 'away', registry)
    home_batting = parse_batting_table(final_game.home_stats.box_score, 'home', registry)
    away_pitching = parse_pitching_table(final_game.visitor_stats.pitching, 'away', registry)
    home_pitching = parse_pitching_table(final_game.home_stats.pitching, 'home', registry)

    score = final_game.final_score
    teams = {
        'away': _team_snapshot('away', score.visitor_team, away_short_name, score.visitor_score,
                               score.winner == 'visitor', line_score, away_batting, away_pitching),
        'home': _team_snapshot('home', score.home_team, home_short_name, score.home_score,
                               score.winner == 'home', line_score, home_batting, home_pitching),
    }

    scoring_timeline = [parse_scoring_event(play) for play in final_game.scoring_plays]
    team_lookup = build_team_token_lookup(final_game, away_short_name, home_short_name)
    plays = build_unified_plays(final_game, scoring_timeline, registry, team_lookup, warnings)

    cross_checks = (
        validate_runs_by_inning(plays, line_score)
        + validate_batting_totals(away_batting, line_score.away_totals, 'away')
        + validate_batting_totals(home_batting, line_score.home_totals, 'home')
    )
    for message in cross_checks:
        logger.warning(message)
        warnings.append(message)

    logger.debug(f"Game {final_game.id}: {len(plays)} unified plays, {len(registry)} players, {len(warnings)} warnings")

    decisions = final_game.pitcher_decisions
    return {
        'schema_version': SCHEMA_VERSION,
        'parser_version': PARSER_VERSION,
        'generated_at': datetime.now(timezone.utc).isoformat(),
        'game': {
            'id': final_game.id,
            'status': final_game.status,
            'title': final_game.event.title,
            'date': final_game.event.date,
            'time': final_game.event.time,
            'venue': final_game.event.venue,
            'location': final_game.event.location,
            'attendance': parse_integer(_info_value(info, 'Attendance', 'attendance')),
            'duration': to_optional_string(_info_value(info, 'Duration', 'duration')),
            'umpires': {
                'hp': to_optional_string(_info_value(info, 'HP', 'hp')),
                'first_base': to_optional_string(_info_value(info, '1B')),
                'second_base': to_optional_string(_info_value(info, '2B')),
                'third_base': to_optional_string(_info_value(info, '3B')),
                'raw': to_optional_string(_info_value(info, 'Umpires', 'umpires')),
            },
        },
        'teams': teams,
        'participants': {
            'players': {player_id: asdict(player) for player_id, player in registry.to_record().items()},
        },
        'decisions': {
            'winning_pitcher': normalize_pitcher_decision(decisions.winning),
            'losing_pitcher': normalize_pitcher_decision(decisions.losing),
            'save_pitcher': normalize_pitcher_decision(decisions.save),
        },
        'plays': [asdict(play) for play in plays],
        'indexes': {
            'scoring_play_ids': [play.play_id for play in plays if play.result.is_scoring_play],
            'play_ids_by_inning': build_play_ids_by_inning(plays),
        },
        'warnings': warnings,
    }
