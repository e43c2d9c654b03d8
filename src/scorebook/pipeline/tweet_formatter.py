"""
Post Text Formatting
====================
Short-form post text for live plays and final scores.

Play posts are blank-line separated blocks:

    Top 3rd | 1 Out

    Southern Miss - 2
    Troy - 1

    John Smith singled to left field.

    Pitching | Jake Miller - P 42

Everything is trimmed to the post length limit with a trailing ellipsis.
"""

import re
from typing import Iterable, Optional

from scorebook.parsing.events_parser import LivePlayEvent
from scorebook.parsing.game_metadata_parser import LiveSummary, PitcherDecision, PitcherDecisions
from scorebook.parsing.parsing_utils import clean_text, ordinal
from scorebook.pipeline.play_state import DerivedPlayState

MAX_POST_LENGTH = 280
MIN_POST_LENGTH = 20

NAME_UPPERCASE_EXCLUSIONS = {
    'RBI', 'RISP', 'OPS', 'ERA', 'WHIP', 'BABIP', 'HBP', 'LOB', 'AB', 'BB',
    'SO', 'IP', 'HR', 'SB', 'CS', 'DP', 'TP', 'K', 'KKFK',
}

NAME_ACTION_HINT_RE = re.compile(
    r'^(struck|grounded|flied|lined|popped|fouled|walked|singled|doubled|tripled|homered'
    r'|reached|advanced|stole|to|pinch|out)\b',
    re.IGNORECASE,
)

_LAST_COMMA_FIRST_RE = re.compile(r"\b([A-Za-z][A-Za-z'.-]+),\s*([A-Za-z][A-Za-z'.-]+)\b")
_INITIAL_SURNAME_RE = re.compile(r"\b([A-Za-z]\.)\s+([A-Za-z][A-Za-z'.-]+)\b")
_UPPERCASE_WORD_RE = re.compile(r"\b([A-Z][A-Z'.-]{3,})\b")
_FULL_LAST_COMMA_FIRST_RE = re.compile(r"^([A-Za-z][A-Za-z'.-]+),\s*([A-Za-z][A-Za-z'.-]+)$")
_PREVIOUS_TOKEN_RE = re.compile(r'([A-Za-z.]+)\s*$')


# =============================================================================
# Name casing
# =============================================================================

def _capitalize(value: str) -> str:
    return value[:1].upper() + value[1:].lower() if value else value


def format_name_token(token: str) -> str:
    """One name token: initials and suffixes upper-cased, Mc prefixes kept"""
    if re.match(r'^[A-Za-z]\.$', token):
        return token.upper()
    if re.match(r'^(jr|sr|ii|iii|iv|v)$', token, re.IGNORECASE):
        return token.upper()

    formatted = []
    for segment in re.split(r"([-'`])", token):
        if not segment or re.match(r"^[-'`]$", segment):
            formatted.append(segment)
            continue
        lower = segment.lower()
        if lower.startswith('mc') and len(lower) > 2:
            formatted.append(f"Mc{_capitalize(lower[2:])}")
        else:
            formatted.append(_capitalize(lower))
    return ''.join(formatted)


def to_title_case_person_name(value: str) -> str:
    return ' '.join(format_name_token(token) for token in clean_text(value).split()).strip()


def normalize_display_name(value: Optional[str]) -> str:
    """'SMITH,JOHN' -> 'John Smith', 'o'neil' -> "O'Neil" """
    text = clean_text(value)
    match = _FULL_LAST_COMMA_FIRST_RE.match(text)
    if not match:
        return to_title_case_person_name(text)
    return f"{to_title_case_person_name(match.group(2))} {to_title_case_person_name(match.group(1))}"


def normalize_uppercase_surname_context(text: str) -> str:
    """
    Title-case all-caps words that read as surnames.

    A word counts as a surname when it follows 'for', 'to' or 'by', or when the
    text after it starts with a play verb ('SMITH singled ...'). Stat
    abbreviations are never touched.
    """
    def replace_word(match: re.Match) -> str:
        word = match.group(1)
        if word in NAME_UPPERCASE_EXCLUSIONS:
            return word

        before = match.string[:match.start()]
        after = match.string[match.end():].lstrip()
        previous = _PREVIOUS_TOKEN_RE.search(before)
        previous_token = previous.group(1).lower() if previous else ''

        if previous_token in ('for', 'to', 'by'):
            return to_title_case_person_name(word)
        if NAME_ACTION_HINT_RE.match(after):
            return to_title_case_person_name(word)
        return word

    return _UPPERCASE_WORD_RE.sub(replace_word, text)


def _replace_name_variant(text: str, variant: str, normalized: str) -> str:
    pattern = re.sub(r'(\\\s)+', r'\\s+', re.escape(variant))
    regex = re.compile(rf'(^|[^A-Za-z0-9])({pattern})(?=[^A-Za-z0-9]|$)')
    return regex.sub(lambda match: f"{match.group(1)}{normalized}", text)


def normalize_names_in_text(value: str, explicit_names: Iterable[Optional[str]] = ()) -> str:
    """
    Rewrite player names inside a play sentence into display form.

    Args:
        value: Play sentence
        explicit_names: Batter/pitcher cells; every casing of them found in the
            sentence is replaced by the display name, longest variant first

    Returns:
        Sentence with 'Last, First', 'J. SMITH' and all-caps surnames fixed
    """
    text = _LAST_COMMA_FIRST_RE.sub(
        lambda match: f"{to_title_case_person_name(match.group(2))} {to_title_case_person_name(match.group(1))}",
        value,
    )
    text = _INITIAL_SURNAME_RE.sub(
        lambda match: f"{match.group(1).upper()} {to_title_case_person_name(match.group(2))}",
        text,
    )
    text = normalize_uppercase_surname_context(text)

    replacements = {}
    for raw_name in explicit_names:
        raw = clean_text(raw_name)
        if not raw:
            continue
        normalized = normalize_display_name(raw)
        if not normalized:
            continue
        for variant in (raw, raw.upper(), raw.lower(), normalized, normalized.upper()):
            replacements[variant] = normalized

    for variant, normalized in sorted(replacements.items(), key=lambda item: len(item[0]), reverse=True):
        if not variant or variant == normalized:
            continue
        text = _replace_name_variant(text, variant, normalized)

    return text


# =============================================================================
# Header and score lines
# =============================================================================

def build_inning_label(play: LivePlayEvent, outs_after_play: Optional[int], summary: LiveSummary) -> str:
    """'Mid 3rd' / 'End 7th' after the third out, else 'Top 3rd', 'Inning 3rd', status text or 'Live'"""
    if play.inning is not None and play.half and outs_after_play == 3 and not play.is_substitution:
        return f"{'Mid' if play.half == 'top' else 'End'} {ordinal(play.inning)}"

    if play.inning is not None and play.half:
        return f"{_capitalize(play.half)} {ordinal(play.inning)}"

    if play.inning is not None:
        return f"Inning {ordinal(play.inning)}"

    return clean_text(summary.status_text) or 'Live'


def format_score(value: Optional[int]) -> str:
    return '?' if value is None else str(value)


def format_outs_label(value: Optional[int]) -> str:
    if value is None:
        return 'Outs ?'
    return f"{value} {'Out' if value == 1 else 'Outs'}"


def format_header_line(inning_label: str, outs: Optional[int]) -> str:
    if re.match(r'^(Mid|End)\b', inning_label):
        return inning_label
    return f"{inning_label} | {format_outs_label(outs)}"


# =============================================================================
# Length
# =============================================================================

def clamp_tweet_length(value) -> int:
    try:
        length = int(value)
    except (TypeError, ValueError, OverflowError):
        return MAX_POST_LENGTH
    return max(MIN_POST_LENGTH, min(MAX_POST_LENGTH, length))


def trim_to_length(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    return f"{text[:max(0, max_length - 3)].rstrip()}..."


# =============================================================================
# Post bodies
# =============================================================================

def build_play_tweet_text(
    play: LivePlayEvent,
    summary: LiveSummary,
    state_after_play: Optional[DerivedPlayState] = None,
    max_length: int = MAX_POST_LENGTH,
    append_tag: Optional[str] = None,
) -> str:
    """
    Post text for one live play.

    Args:
        play: The play event
        summary: Current live snapshot (team names, fallbacks for score/outs/pitcher)
        state_after_play: Derived score and outs right after this play
        max_length: Length limit, clamped to 20..280
        append_tag: Trailing hashtag block

    Returns:
        Post text no longer than the clamped limit
    """
    max_length = clamp_tweet_length(max_length)
    situation = summary.situation

    outs = state_after_play.outs_after_play if state_after_play is not None else None
    if outs is None:
        outs = play.outs
    if outs is None and situation is not None:
        outs = situation.outs

    situation_pitcher = situation.pitcher if situation is not None else None
    pitcher_name = normalize_display_name(play.pitcher or (situation_pitcher.name if situation_pitcher else None))
    pitch_count = situation_pitcher.pitch_count if situation_pitcher else None

    away_score = state_after_play.away_score if state_after_play is not None else None
    home_score = state_after_play.home_score if state_after_play is not None else None
    if away_score is None:
        away_score = summary.visitor_score
    if home_score is None:
        home_score = summary.home_score

    blocks = [
        format_header_line(build_inning_label(play, outs, summary), outs),
        f"{clean_text(summary.visitor_team)} - {format_score(away_score)}\n"
        f"{clean_text(summary.home_team)} - {format_score(home_score)}",
        normalize_names_in_text(clean_text(play.text), [play.batter, play.pitcher]),
    ]

    if pitcher_name and pitch_count is not None:
        blocks.append(f"Pitching | {pitcher_name} - P {pitch_count}")

    if append_tag:
        blocks.append(append_tag.strip())

    return trim_to_length('\n\n'.join(block for block in blocks if block), max_length)


def _decision_name(decision: Optional[PitcherDecision]) -> Optional[str]:
    if decision is None:
        return None
    return normalize_display_name(decision.player) or None


def build_final_tweet_text(
    summary: LiveSummary,
    pitcher_decisions: Optional[PitcherDecisions] = None,
    max_length: int = MAX_POST_LENGTH,
    append_tag: Optional[str] = None,
) -> str:
    """'Final', both score lines, then W/S/L lines when decisions are known"""
    max_length = clamp_tweet_length(max_length)
    decisions = pitcher_decisions or PitcherDecisions()

    lines = [
        'Final',
        f"{clean_text(summary.visitor_team)} - {format_score(summary.visitor_score)}",
        f"{clean_text(summary.home_team)} - {format_score(summary.home_score)}",
    ]

    decision_lines = [
        f"{label} - {name}"
        for label, name in (
            ('W', _decision_name(decisions.winning)),
            ('S', _decision_name(decisions.save)),
            ('L', _decision_name(decisions.losing)),
        )
        if name
    ]
    if decision_lines:
        lines.append('')
        lines.extend(decision_lines)

    if append_tag:
        lines.append(append_tag.strip())

    return trim_to_length('\n'.join(lines), max_length)
