"""
Play-by-play row extraction
===========================
Walks per-inning play-by-play tables and produces ordered play events.

Two consumers:
- live feed: ``extract_live_play_events`` assigns every play a stable
  content-derived key so repeated polls of the same page yield the same keys
- final games: ``parse_inning_play_by_play`` and ``parse_scoring_plays`` keep
  the typed rows (half markers, notes, summaries) for the scorekeeping build
"""

import hashlib
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from scorebook.parsing.parsing_utils import CellValue, clean_text, parse_integer, to_optional_string
from scorebook.parsing.tables import (
    StatsSection,
    StatsTable,
    StatsTableRow,
    align_cells_to_headers,
    find_section,
    first_table,
    read_cell_by_header,
)

PLAY_HEADER = r'^play$'
SCORING_DEC_HEADER = r'^scoring dec\.?$'
BATTER_HEADER = r'^batter$'
PITCHER_HEADER = r'^pitcher$'
OUTS_HEADER = r'^outs$'

_HALF_MARKER_RE = re.compile(r'^top of the|^bottom of the', re.IGNORECASE)
_INNING_SUMMARY_RE = re.compile(r'inning summary:', re.IGNORECASE)
_HALF_AND_INNING_RE = re.compile(r'(top|bottom|bot)\s+of\s+the\s+(\d+)', re.IGNORECASE)
_TITLE_INNING_RE = re.compile(r'(\d+)(?:st|nd|rd|th)?\s+inning', re.IGNORECASE)

SUBSTITUTION_PATTERNS = [
    re.compile(r'\bpinch\s+(?:ran|runner|hit)\s+for\b', re.IGNORECASE),
    re.compile(r'\bto\s+(?:p|c|1b|2b|3b|ss|lf|cf|rf|dh|ph|pr)\s+for\b', re.IGNORECASE),
    re.compile(r'\bsub(?:stitution)?\b', re.IGNORECASE),
]


@dataclass(frozen=True)
class LivePlayEvent:
    key: str
    order: int
    inning: Optional[int]
    half: Optional[str]
    is_substitution: bool
    text: str
    scoring_decision: Optional[str]
    batter: Optional[str]
    pitcher: Optional[str]
    outs: Optional[int]
    section_title: str


@dataclass(frozen=True)
class PlayRowFields:
    play: Optional[str] = None
    scoring_decision: Optional[str] = None
    batter: Optional[str] = None
    pitcher: Optional[str] = None
    outs: Optional[int] = None


@dataclass(frozen=True)
class PlayByPlayRow:
    """One row of a final game's inning play-by-play (type: half/summary/play/note)"""
    type: str
    half: Optional[str]
    text: str
    action: Optional[str] = None
    scoring_decision: Optional[str] = None
    batter: Optional[str] = None
    pitcher: Optional[str] = None
    outs: Optional[int] = None


@dataclass(frozen=True)
class InningPlayByPlay:
    inning: int
    title: str
    events: List[PlayByPlayRow]


@dataclass(frozen=True)
class ScoringPlayRow:
    team: Optional[str]
    inning: Optional[str]
    scoring_decision: Optional[str]
    play: str
    batter: Optional[str]
    pitcher: Optional[str]
    outs: Optional[int]


def _text_or_none(value: CellValue) -> Optional[str]:
    text = clean_text(value)
    return text or None


def _outs_or_none(value: CellValue) -> Optional[int]:
    return parse_integer(value)


# =============================================================================
# Cell predicates
# =============================================================================

def is_likely_action_code(value: str) -> bool:
    """Short all-caps token such as 'K', '1B', 'HR'"""
    text = clean_text(value)
    if not text or ' ' in text:
        return False
    return bool(re.match(r'^[A-Z0-9]{1,4}$', text))


def is_likely_play_text(value: str) -> bool:
    text = clean_text(value)
    if not text or is_likely_action_code(text):
        return False
    return bool(re.search(r'\s', text) or re.search(r'[.();]', text))


def is_likely_player_name(value: str) -> bool:
    text = clean_text(value)
    if not text or text.isdigit() or is_likely_action_code(text):
        return False
    return bool(re.match(r"^[A-Za-z][A-Za-z'. -]*$", text))


def is_substitution_text(value: Optional[str]) -> bool:
    text = clean_text(value)
    if not text:
        return False
    return any(pattern.search(text) for pattern in SUBSTITUTION_PATTERNS)


def is_invalid_parsed_play(
    play: Optional[str],
    first_cell: Optional[str],
    batter: Optional[str],
    pitcher: Optional[str],
    outs: Optional[int],
) -> bool:
    """True when header-based extraction produced values that can't be a real play"""
    if not play or play.isdigit():
        return True

    if batter and batter.isdigit():
        return True

    if first_cell and play == batter and len(first_cell) > len(play) + 6:
        return True

    if first_cell and play != first_cell and is_likely_play_text(first_cell) and not is_likely_play_text(play):
        return True

    if ' ' not in play and not pitcher and outs is None and first_cell and is_likely_play_text(first_cell):
        return True

    return False


# =============================================================================
# Malformed-table fallback: positional inference over the raw cells
# =============================================================================

def strip_trailing_outs(values: List[str]) -> Tuple[List[str], Optional[int]]:
    """A trailing single digit 0-3 is the outs column"""
    if values and re.match(r'^\d$', values[-1]) and 0 <= int(values[-1]) <= 3:
        return values[:-1], int(values[-1])
    return values, None


def drop_leading_action_code(values: List[str]) -> List[str]:
    if len(values) >= 2 and is_likely_action_code(values[0]) and is_likely_play_text(values[1]):
        return values[1:]
    return values


def split_trailing_participants(remainder: List[str]) -> Optional[Tuple[Optional[str], str, str]]:
    """(scoring decision, batter, pitcher) when the last two cells both look like names"""
    if len(remainder) < 2:
        return None

    pitcher, batter = remainder[-1], remainder[-2]
    if not (is_likely_player_name(pitcher) and is_likely_player_name(batter)):
        return None

    scoring_parts = [entry for entry in remainder[:-2] if not is_likely_action_code(entry)]
    return (' '.join(scoring_parts) if scoring_parts else None), batter, pitcher


def leftover_scoring_decision(remainder: List[str]) -> Optional[str]:
    if remainder and not is_likely_player_name(remainder[0]):
        return remainder[0]
    return None


def infer_play_row_fields(cells: Sequence[CellValue]) -> PlayRowFields:
    """
    Recover play fields positionally from a row whose columns are shifted.

    Order matters: outs come off the end first, then a leading action code,
    then the play text, then trailing batter/pitcher names.
    """
    values = [text for text in (_text_or_none(cell) for cell in cells) if text]
    if not values:
        return PlayRowFields()

    values, outs = strip_trailing_outs(values)
    if not values:
        return PlayRowFields(outs=outs)

    values = drop_leading_action_code(values)
    play, remainder = values[0], values[1:]

    scoring_decision = batter = pitcher = None
    participants = split_trailing_participants(remainder)
    if participants:
        scoring_decision, batter, pitcher = participants

    if not scoring_decision:
        scoring_decision = leftover_scoring_decision(remainder)

    return PlayRowFields(
        play=play,
        scoring_decision=scoring_decision,
        batter=batter,
        pitcher=pitcher,
        outs=outs,
    )


# =============================================================================
# Row parsing
# =============================================================================

def is_header_placeholder_row(table: StatsTable, row: StatsTableRow) -> bool:
    """Repeated header rows inside the body (Play / Scoring Dec. / Batter / Pitcher / Outs)"""
    return (
        to_optional_string(read_cell_by_header(table, row, PLAY_HEADER)) == 'Play'
        and to_optional_string(read_cell_by_header(table, row, SCORING_DEC_HEADER)) == 'Scoring Dec.'
        and to_optional_string(read_cell_by_header(table, row, BATTER_HEADER)) == 'Batter'
        and to_optional_string(read_cell_by_header(table, row, PITCHER_HEADER)) == 'Pitcher'
        and to_optional_string(read_cell_by_header(table, row, OUTS_HEADER)) == 'Outs'
    )


def _first_cell(table: StatsTable, row: StatsTableRow) -> Optional[str]:
    aligned = align_cells_to_headers(table.headers, row.cells)
    value = aligned[0] if aligned and aligned[0] is not None else (row.cells[0] if row.cells else None)
    return _text_or_none(value)


def _read_fields_by_header(table: StatsTable, row: StatsTableRow) -> PlayRowFields:
    return PlayRowFields(
        play=_text_or_none(read_cell_by_header(table, row, PLAY_HEADER)),
        scoring_decision=_text_or_none(read_cell_by_header(table, row, SCORING_DEC_HEADER)),
        batter=_text_or_none(read_cell_by_header(table, row, BATTER_HEADER)),
        pitcher=_text_or_none(read_cell_by_header(table, row, PITCHER_HEADER)),
        outs=_outs_or_none(read_cell_by_header(table, row, OUTS_HEADER)),
    )


def _merge_fallback(fields: PlayRowFields, fallback: PlayRowFields) -> PlayRowFields:
    return PlayRowFields(
        play=fallback.play or fields.play,
        scoring_decision=fallback.scoring_decision or fields.scoring_decision,
        batter=fallback.batter or fields.batter,
        pitcher=fallback.pitcher or fields.pitcher,
        outs=fallback.outs if fallback.outs is not None else fields.outs,
    )


def parse_half_marker(value: Optional[str]) -> Optional[str]:
    """'Top of the 3rd' -> 'top', 'Bottom of the 3rd' -> 'bottom'"""
    if value and _HALF_MARKER_RE.search(value):
        return 'top' if value.lower().startswith('top') else 'bottom'
    return None


def parse_half_and_inning(value: str) -> Tuple[Optional[str], Optional[int]]:
    match = _HALF_AND_INNING_RE.search(clean_text(value))
    if not match:
        return None, None
    half = 'top' if match.group(1).lower().startswith('top') else 'bottom'
    return half, int(match.group(2))


def parse_inning_from_title(title: str) -> Optional[int]:
    """'3rd Inning Play-by-play' -> 3"""
    match = _TITLE_INNING_RE.search(clean_text(title))
    return int(match.group(1)) if match else None


def parse_live_play_row(table: StatsTable, row: StatsTableRow) -> Optional[Dict]:
    """
    Parse one live play-by-play row.

    Returns:
        {'type': 'half', 'half': ...} for half-inning markers, a play dict for
        plays, or None for header, summary, and empty rows
    """
    if is_header_placeholder_row(table, row):
        return None

    first_cell = _first_cell(table, row)
    fields = _read_fields_by_header(table, row)

    if is_invalid_parsed_play(fields.play, first_cell, fields.batter, fields.pitcher, fields.outs):
        fields = _merge_fallback(fields, infer_play_row_fields(row.cells))

    half_marker = parse_half_marker(first_cell)
    if half_marker:
        return {'type': 'half', 'half': half_marker}

    if first_cell and _INNING_SUMMARY_RE.search(first_cell):
        return None

    play = fields.play
    if not play or play.lower() == 'play' or play.isdigit():
        return None

    half, inning = parse_half_and_inning(first_cell) if first_cell else (None, None)

    return {
        'type': 'play',
        'inning': inning,
        'half': half,
        'text': play,
        'is_substitution': is_substitution_text(play),
        'scoring_decision': fields.scoring_decision,
        'batter': fields.batter,
        'pitcher': fields.pitcher,
        'outs': fields.outs,
    }


def _signature_value(value) -> str:
    if value is None:
        return ''
    return clean_text(str(value)).lower()


def _digest(value: str) -> str:
    return hashlib.sha1(value.encode('utf-8')).hexdigest()[:20]


def extract_live_play_events(sections: Sequence[StatsSection]) -> List[LivePlayEvent]:
    """
    Ordered play events from every play-by-play section of a live stats page.

    Keys hash the normalized (inning, half, text, batter, pitcher, outs,
    scoring decision) signature plus a per-signature occurrence counter, so
    identical rows get distinct keys and unchanged input yields the same keys.
    """
    events = []
    occurrences: Dict[str, int] = {}
    order = 0

    for section in sections:
        if not re.search(r'play-by-play', section.title, re.IGNORECASE):
            continue

        inning_from_title = parse_inning_from_title(section.title)

        for table in section.tables:
            current_half = None

            for row in table.rows:
                parsed = parse_live_play_row(table, row)
                if parsed is None:
                    continue

                if parsed['type'] == 'half':
                    current_half = parsed['half']
                    continue

                inning = parsed['inning'] if parsed['inning'] is not None else inning_from_title
                half = parsed['half'] or current_half

                signature = '|'.join(_signature_value(value) for value in (
                    inning, half, parsed['text'], parsed['batter'],
                    parsed['pitcher'], parsed['outs'], parsed['scoring_decision'],
                ))
                occurrences[signature] = occurrences.get(signature, 0) + 1

                order += 1
                events.append(LivePlayEvent(
                    key=_digest(f"{signature}|{occurrences[signature]}"),
                    order=order,
                    inning=inning,
                    half=half,
                    is_substitution=parsed['is_substitution'],
                    text=parsed['text'],
                    scoring_decision=parsed['scoring_decision'],
                    batter=parsed['batter'],
                    pitcher=parsed['pitcher'],
                    outs=parsed['outs'],
                    section_title=section.title,
                ))

    return events


# =============================================================================
# Final game play-by-play
# =============================================================================

def parse_play_by_play_row(table: StatsTable, row: StatsTableRow) -> Optional[PlayByPlayRow]:
    if is_header_placeholder_row(table, row):
        return None

    aligned = align_cells_to_headers(table.headers, row.cells)
    first_cell = _first_cell(table, row)
    action = to_optional_string(aligned[0]) if aligned else None
    fields = _read_fields_by_header(table, row)

    half = parse_half_marker(first_cell)
    if half:
        return PlayByPlayRow(type='half', half=half, text=first_cell)

    if first_cell and _INNING_SUMMARY_RE.search(first_cell):
        return PlayByPlayRow(type='summary', half=None, text=first_cell)

    if fields.play:
        return PlayByPlayRow(
            type='play',
            half=None,
            text=fields.play,
            action=action if action and action != fields.play else None,
            scoring_decision=to_optional_string(fields.scoring_decision),
            batter=to_optional_string(fields.batter),
            pitcher=to_optional_string(fields.pitcher),
            outs=fields.outs,
        )

    if first_cell:
        return PlayByPlayRow(type='note', half=None, text=first_cell)

    return None


def parse_inning_play_by_play(inning: int, sections: Sequence[StatsSection]) -> InningPlayByPlay:
    """Typed rows from one inning's play-by-play page"""
    section = find_section(sections, r'inning play-by-play')
    table = first_table(section)

    if table is None:
        return InningPlayByPlay(inning=inning, title=f"{inning}th Inning Play-by-play", events=[])

    events = [event for event in (parse_play_by_play_row(table, row) for row in table.rows) if event]
    return InningPlayByPlay(inning=inning, title=section.title, events=events)


def parse_scoring_plays(sections: Sequence[StatsSection]) -> List[ScoringPlayRow]:
    """Rows of the 'Scoring Summary' card"""
    table = first_table(find_section(sections, r'scoring summary'))
    if table is None:
        return []

    plays = []
    for row in table.rows:
        play = to_optional_string(read_cell_by_header(table, row, PLAY_HEADER))
        if not play or play.lower() == 'play':
            continue

        plays.append(ScoringPlayRow(
            team=to_optional_string(read_cell_by_header(table, row, r'^team$')),
            inning=to_optional_string(read_cell_by_header(table, row, r'^inn$')),
            scoring_decision=to_optional_string(read_cell_by_header(table, row, SCORING_DEC_HEADER)),
            play=play,
            batter=to_optional_string(read_cell_by_header(table, row, BATTER_HEADER)),
            pitcher=to_optional_string(read_cell_by_header(table, row, PITCHER_HEADER)),
            outs=parse_integer(read_cell_by_header(table, row, OUTS_HEADER)),
        ))

    return plays
