"""
Play description analysis
=========================
Classifies a free-text play sentence and pulls out pitch sequences, scoring
decision shorthand (``HR 9 1RBI``) and batted-ball locations.
"""

import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional, Tuple

from scorebook.parsing.parsing_utils import to_optional_string


class PlayOutcome(str, Enum):
    SINGLE = 'single'
    DOUBLE = 'double'
    TRIPLE = 'triple'
    HOME_RUN = 'home_run'
    WALK = 'walk'
    INTENTIONAL_WALK = 'intentional_walk'
    HIT_BY_PITCH = 'hit_by_pitch'
    STRIKEOUT = 'strikeout'
    GROUND_OUT = 'ground_out'
    FLY_OUT = 'fly_out'
    LINE_OUT = 'line_out'
    FOUL_OUT = 'foul_out'
    SACRIFICE = 'sacrifice'
    FIELDER_CHOICE = 'fielder_choice'
    REACHED_ON_ERROR = 'reached_on_error'
    STOLEN_BASE = 'stolen_base'
    CAUGHT_STEALING = 'caught_stealing'
    PICKOFF = 'pickoff'
    WILD_PITCH = 'wild_pitch'
    PASSED_BALL = 'passed_ball'
    BALK = 'balk'
    OTHER = 'other'


@dataclass(frozen=True)
class ParsedPlay:
    outcome: PlayOutcome
    tags: List[str]


@dataclass(frozen=True)
class PitchCount:
    balls: int
    strikes: int


@dataclass(frozen=True)
class PitchToken:
    pitch_number: int
    code: str
    description: str


@dataclass(frozen=True)
class PitchContext:
    final_count: Optional[PitchCount]
    raw_sequence: Optional[str]
    pitches: List[PitchToken] = field(default_factory=list)


@dataclass(frozen=True)
class FieldLocation:
    code: int
    abbreviation: str
    name: str


@dataclass(frozen=True)
class ScoringDecisionContext:
    play_code: Optional[str]
    fielder_codes: List[int]
    field_locations: List[FieldLocation]
    rbi: Optional[int]
    location_source: str  # text | scorecard | none
    location_confidence: float


# Tags detected independently of the outcome
TAG_PATTERNS = [
    ('double_play', re.compile(r'\bdouble play\b')),
    ('triple_play', re.compile(r'\btriple play\b')),
    ('run_scored', re.compile(r'\bscored\b|\bscores\b')),
    ('rbi', re.compile(r'\brbi\b')),
]

# First match wins: extra-base hits before singles, "double play" never a double
OUTCOME_MATCHERS: List[Tuple[PlayOutcome, re.Pattern, str]] = [
    (PlayOutcome.HOME_RUN, re.compile(r'\bhomered\b|\bhome run\b'), 'home_run'),
    (PlayOutcome.TRIPLE, re.compile(r'\btripled\b|\btriple(?!\s+play)\b'), 'triple'),
    (PlayOutcome.DOUBLE, re.compile(r'\bdoubled\b|\bdouble(?!\s+play)\b'), 'double'),
    (PlayOutcome.SINGLE, re.compile(r'\bsingled\b|\bsingle\b'), 'single'),
    (PlayOutcome.INTENTIONAL_WALK, re.compile(r'\bintentionally walked\b'), 'intentional_walk'),
    (PlayOutcome.WALK, re.compile(r'\bwalked\b|\bwalk\b'), 'walk'),
    (PlayOutcome.HIT_BY_PITCH, re.compile(r'\bhit by pitch\b|\bhbp\b'), 'hit_by_pitch'),
    (PlayOutcome.CAUGHT_STEALING, re.compile(r'\bcaught stealing\b'), 'caught_stealing'),
    (PlayOutcome.PICKOFF, re.compile(r'\bpicked off\b|\bpickoff\b'), 'pickoff'),
    (PlayOutcome.STOLEN_BASE, re.compile(r'\bstole\b|\bstolen base\b'), 'stolen_base'),
    (PlayOutcome.STRIKEOUT, re.compile(r'\bstruck out\b|\bstrikeout\b'), 'strikeout'),
    (PlayOutcome.GROUND_OUT, re.compile(r'\bgrounded out\b|\bground out\b|\bgroundout\b'), 'ground_out'),
    (PlayOutcome.FLY_OUT, re.compile(r'\bflied out\b|\bfly out\b|\bpopped out\b'), 'fly_out'),
    (PlayOutcome.LINE_OUT, re.compile(r'\blined out\b|\bline out\b'), 'line_out'),
    (PlayOutcome.FOUL_OUT, re.compile(r'\bfouled out\b|\bfoul out\b'), 'foul_out'),
    (PlayOutcome.SACRIFICE, re.compile(r'\bsacrifice\b|\bsac fly\b|\bsac bunt\b'), 'sacrifice'),
    (PlayOutcome.FIELDER_CHOICE, re.compile(r"\bfielder'?s choice\b"), 'fielder_choice'),
    (PlayOutcome.REACHED_ON_ERROR,
     re.compile(r'\breached on an error\b|\breached on a throwing error\b|\breached on error\b'), 'error'),
    (PlayOutcome.WILD_PITCH, re.compile(r'\bwild pitch\b'), 'wild_pitch'),
    (PlayOutcome.PASSED_BALL, re.compile(r'\bpassed ball\b'), 'passed_ball'),
    (PlayOutcome.BALK, re.compile(r'\bbalk\b'), 'balk'),
]

PITCH_DESCRIPTIONS = {
    'B': 'ball',
    'I': 'intentional_ball',
    'P': 'pitchout_ball',
    'Q': 'pitchout_strike',
    'K': 'called_strike',
    'C': 'called_strike',
    'S': 'swinging_strike',
    'M': 'swinging_strike',
    'F': 'foul',
    'L': 'foul',
    'T': 'foul',
    'X': 'in_play',
    'H': 'hit_by_pitch',
}

FIELDER_POSITIONS = {
    1: ('P', 'pitcher'),
    2: ('C', 'catcher'),
    3: ('1B', 'first base'),
    4: ('2B', 'second base'),
    5: ('3B', 'third base'),
    6: ('SS', 'shortstop'),
    7: ('LF', 'left field'),
    8: ('CF', 'center field'),
    9: ('RF', 'right field'),
}

_OUTFIELD_PREFIX = r'\b(?:to|into|toward|towards|down)\s+(?:deep\s+)?'
_INFIELD_PREFIX = r'\b(?:to|toward|towards)\s+'

TEXT_LOCATION_PATTERNS = [
    (9, re.compile(_OUTFIELD_PREFIX + r'(?:right field|rf)\b')),
    (8, re.compile(_OUTFIELD_PREFIX + r'(?:center field|cf)\b')),
    (7, re.compile(_OUTFIELD_PREFIX + r'(?:left field|lf)\b')),
    (1, re.compile(_INFIELD_PREFIX + r'(?:pitcher|p)\b')),
    (2, re.compile(_INFIELD_PREFIX + r'(?:catcher|c)\b')),
    (3, re.compile(_INFIELD_PREFIX + r'(?:first base|1b)\b')),
    (4, re.compile(_INFIELD_PREFIX + r'(?:second base|2b)\b')),
    (5, re.compile(_INFIELD_PREFIX + r'(?:third base|3b)\b')),
    (6, re.compile(_INFIELD_PREFIX + r'(?:shortstop|ss)\b')),
]

_PITCH_GROUP_RE = re.compile(r'\((\d)\s*-\s*(\d)(?:\s+([A-Z]+))?\)')
_RBI_COUNT_RE = re.compile(r'(\d+)\s*RBI\b')


def parse_play_description(text: str) -> ParsedPlay:
    """Classify a play sentence into one outcome plus a tag list"""
    lower = (text or '').lower()
    tags = [tag for tag, pattern in TAG_PATTERNS if pattern.search(lower)]

    for outcome, pattern, tag in OUTCOME_MATCHERS:
        if pattern.search(lower):
            if tag not in tags:
                tags.append(tag)
            return ParsedPlay(outcome=outcome, tags=tags)

    return ParsedPlay(outcome=PlayOutcome.OTHER, tags=tags)


def map_pitch_code(code: str) -> str:
    return PITCH_DESCRIPTIONS.get(code.upper(), 'unknown')


def parse_pitch_context(text: str) -> Optional[PitchContext]:
    """
    Read the ``(balls-strikes SEQUENCE)`` group from a play sentence.

    Play text can carry unrelated parentheticals (hit distance, season totals),
    so the last group is the one describing the at-bat.
    """
    matches = list(_PITCH_GROUP_RE.finditer(text or ''))
    if not matches:
        return None

    selected = matches[-1]
    raw_sequence = selected.group(3).strip().upper() if selected.group(3) else None
    pitches = [
        PitchToken(pitch_number=index + 1, code=code, description=map_pitch_code(code))
        for index, code in enumerate(raw_sequence or '')
    ]

    return PitchContext(
        final_count=PitchCount(balls=int(selected.group(1)), strikes=int(selected.group(2))),
        raw_sequence=raw_sequence,
        pitches=pitches,
    )


def map_fielder_code(code: int) -> FieldLocation:
    abbreviation, name = FIELDER_POSITIONS.get(code, ('UNK', 'unknown'))
    return FieldLocation(code=code, abbreviation=abbreviation, name=name)


def parse_scoring_decision_context(scoring_decision: Optional[str]) -> Optional[ScoringDecisionContext]:
    """
    Parse scorecard shorthand such as ``HR 9 1RBI`` or ``6-3``.

    Args:
        scoring_decision: Raw "Scoring Dec." cell

    Returns:
        ScoringDecisionContext, or None for an empty decision
    """
    clean = to_optional_string(scoring_decision)
    if not clean:
        return None

    normalized = clean.upper()
    parts = normalized.split()
    if not parts:
        return None

    candidate = parts[0]
    play_code = candidate if re.match(r'^[A-Z0-9]+$', candidate) and not re.match(r'^\d+RBI$', candidate) else None

    location_token = next((part for part in parts if re.fullmatch(r'[0-9]+', part)), None)
    fielder_codes = [int(digit) for digit in location_token or '' if 1 <= int(digit) <= 9]

    rbi_match = _RBI_COUNT_RE.search(normalized)
    if rbi_match:
        rbi = int(rbi_match.group(1))
    else:
        rbi = 1 if re.search(r'\bRBI\b', normalized) else None

    return ScoringDecisionContext(
        play_code=play_code,
        fielder_codes=fielder_codes,
        field_locations=[map_fielder_code(code) for code in fielder_codes],
        rbi=rbi,
        location_source='scorecard' if fielder_codes else 'none',
        location_confidence=0.9 if fielder_codes else 0.0,
    )


def parse_field_locations_from_text(play_text: str) -> List[FieldLocation]:
    """The earliest location phrase in the sentence is the batted-ball location"""
    lower = (play_text or '').lower()
    found = []
    for code, pattern in TEXT_LOCATION_PATTERNS:
        match = pattern.search(lower)
        if match:
            found.append((match.start(), code))

    if not found:
        return []

    _, code = min(found, key=lambda item: item[0])
    return [map_fielder_code(code)]


def resolve_scoring_decision_context(
    scoring_decision: Optional[str],
    play_text: str,
) -> Optional[ScoringDecisionContext]:
    """Text location wins over the scorecard digits when both exist"""
    base = parse_scoring_decision_context(scoring_decision)
    text_locations = parse_field_locations_from_text(play_text)

    if not text_locations:
        return base

    fielder_codes = [location.code for location in text_locations]
    if base is not None:
        return replace(
            base,
            fielder_codes=fielder_codes,
            field_locations=text_locations,
            location_source='text',
            location_confidence=1.0,
        )

    return ScoringDecisionContext(
        play_code=None,
        fielder_codes=fielder_codes,
        field_locations=text_locations,
        rbi=None,
        location_source='text',
        location_confidence=1.0,
    )


def count_runs_scored(text: str) -> int:
    """'scored'/'scores' mentions, plus the batter on a home run"""
    normalized = (text or '').lower()
    runs = len(re.findall(r'\bscored\b', normalized)) + len(re.findall(r'\bscores\b', normalized))
    if re.search(r'\bhomered\b', normalized) or re.search(r'\bhome run\b', normalized):
        runs += 1
    return runs
