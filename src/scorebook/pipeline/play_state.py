"""
Live Play State Derivation
==========================
Per-play score and outs, derived from the current live snapshot.

Score flows backward from "now": walking from the newest play to the oldest,
each play records the running score and then un-does its own runs. Outs flow
forward: each play's outs-after comes from the next play's outs marker when
one exists in the same half-inning.
"""

import logging
import re
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Sequence

from scorebook.parsing.events_parser import LivePlayEvent
from scorebook.parsing.game_metadata_parser import LiveSummary
from scorebook.parsing.parsing_utils import clean_text

logger = logging.getLogger(__name__)

_OUT_KEYWORDS_RE = re.compile(
    r'\bstruck out\b|\blined out\b|\bgrounded out\b|\bflied out\b|\bfouled out\b|\bpopped out\b|\bout\b',
    re.IGNORECASE,
)


@dataclass(frozen=True)
class DerivedPlayState:
    away_score: Optional[int]
    home_score: Optional[int]
    outs_after_play: Optional[int]


@dataclass(frozen=True)
class DerivationSettings:
    """Knobs for the text heuristics; the defaults match observed upstream phrasing"""
    home_run_default_runs: int = 1
    max_outs: int = 3
    final_min_inning: int = 9


DEFAULT_SETTINGS = DerivationSettings()


def parse_rbi_count(value: Optional[str]) -> Optional[int]:
    """'2 RBI' -> 2, 'RBI' -> 1, anything else -> None"""
    if not value:
        return None
    text = clean_text(value)
    explicit = re.search(r'(\d+)\s*RBI', text, re.IGNORECASE)
    if explicit:
        return int(explicit.group(1))
    return 1 if re.search(r'\bRBI\b', text, re.IGNORECASE) else None


def estimate_runs_scored_on_play(play: LivePlayEvent, settings: DerivationSettings = DEFAULT_SETTINGS) -> int:
    """Largest of: 'scored' mentions, decision RBI, text RBI; solo homer when nothing else says"""
    if play.is_substitution:
        return 0

    text = clean_text(play.text)
    scored_mentions = len(re.findall(r'\bscored\b', text, re.IGNORECASE))
    runs = max(scored_mentions, parse_rbi_count(play.scoring_decision) or 0, parse_rbi_count(text) or 0)

    if runs == 0 and re.search(r'\bhomered\b|\bhome run\b', text, re.IGNORECASE):
        runs = settings.home_run_default_runs

    return runs


def estimate_outs_recorded_on_play(text: str) -> int:
    normalized = clean_text(text)
    if not normalized:
        return 0

    if re.search(r'\btriple play\b', normalized, re.IGNORECASE):
        return 3
    if re.search(r'\bdouble play\b', normalized, re.IGNORECASE):
        return 2

    out_at = (len(re.findall(r'\bout at\b', normalized, re.IGNORECASE))
              + len(re.findall(r'\bout on the play\b', normalized, re.IGNORECASE)))
    if out_at > 0:
        return out_at

    return 1 if _OUT_KEYWORDS_RE.search(normalized) else 0


def clamp_outs(value: int, settings: DerivationSettings = DEFAULT_SETTINGS) -> int:
    return max(0, min(settings.max_outs, int(value)))


def batting_side(play: LivePlayEvent) -> Optional[str]:
    if play.half == 'top':
        return 'away'
    if play.half == 'bottom':
        return 'home'
    return None


def is_same_half_inning(a: LivePlayEvent, b: LivePlayEvent) -> bool:
    return a.inning is not None and a.inning == b.inning and a.half is not None and a.half == b.half


def apply_score_pass(
    plays: Sequence[LivePlayEvent],
    states: List[DerivedPlayState],
    away_score: Optional[int],
    home_score: Optional[int],
    settings: DerivationSettings = DEFAULT_SETTINGS,
) -> List[DerivedPlayState]:
    """Backward pass: score as it stood right after each play"""
    states = list(states)
    for index in range(len(plays) - 1, -1, -1):
        play = plays[index]
        states[index] = replace(states[index], away_score=away_score, home_score=home_score)

        runs = estimate_runs_scored_on_play(play, settings)
        if runs <= 0:
            continue

        side = batting_side(play)
        if side == 'away' and away_score is not None:
            away_score = max(0, away_score - runs)
        elif side == 'home' and home_score is not None:
            home_score = max(0, home_score - runs)

    return states


def apply_outs_pass(
    plays: Sequence[LivePlayEvent],
    states: List[DerivedPlayState],
    settings: DerivationSettings = DEFAULT_SETTINGS,
) -> List[DerivedPlayState]:
    """Forward pass: outs after each play"""
    states = list(states)
    for index, play in enumerate(plays):
        next_play = plays[index + 1] if index + 1 < len(plays) else None

        if next_play is not None and is_same_half_inning(play, next_play) and next_play.outs is not None:
            outs = clamp_outs(next_play.outs, settings)
        elif next_play is not None and not is_same_half_inning(play, next_play):
            outs = settings.max_outs
        elif play.is_substitution and index > 0 and is_same_half_inning(plays[index - 1], play):
            outs = states[index - 1].outs_after_play
        elif play.outs is not None:
            outs = clamp_outs(play.outs + estimate_outs_recorded_on_play(play.text), settings)
        else:
            outs = None

        states[index] = replace(states[index], outs_after_play=outs)

    return states


def derive_live_play_states(
    plays: Sequence[LivePlayEvent],
    summary: LiveSummary,
    settings: Optional[DerivationSettings] = None,
) -> Dict[str, DerivedPlayState]:
    """
    Derive score and outs after every play.

    Args:
        plays: Ordered play events (oldest first)
        summary: Current live snapshot; its score is the score after the last play
        settings: Heuristic overrides

    Returns:
        Dict of play key -> DerivedPlayState
    """
    settings = settings or DEFAULT_SETTINGS
    states = [
        DerivedPlayState(away_score=summary.visitor_score, home_score=summary.home_score, outs_after_play=play.outs)
        for play in plays
    ]

    states = apply_score_pass(plays, states, summary.visitor_score, summary.home_score, settings)
    states = apply_outs_pass(plays, states, settings)

    logger.debug(f"Derived state for {len(plays)} plays (score {summary.visitor_score}-{summary.home_score})")
    return {play.key: state for play, state in zip(plays, states)}


def detect_likely_final_from_plays(
    plays: Sequence[LivePlayEvent],
    states: Dict[str, DerivedPlayState],
    settings: Optional[DerivationSettings] = None,
) -> bool:
    """
    Guess whether the game just ended from the last real play.

    True for: top of the 9th+ ending with the home team ahead, the bottom of
    the 9th+ ending with three outs, or a home lead in the bottom half (walk-off).
    """
    settings = settings or DEFAULT_SETTINGS
    if not plays:
        return False

    last_play = next((play for play in reversed(plays) if not play.is_substitution), plays[-1])
    state = states.get(last_play.key)
    if state is None or last_play.inning is None or last_play.half is None:
        return False
    if state.outs_after_play is None or state.away_score is None or state.home_score is None:
        return False
    if last_play.inning < settings.final_min_inning or state.away_score == state.home_score:
        return False

    home_ahead = state.home_score > state.away_score
    three_outs = state.outs_after_play == settings.max_outs

    if last_play.half == 'top':
        return three_outs and home_ahead
    if last_play.half == 'bottom':
        return three_outs or home_ahead
    return False
