"""
Box Score Appearances Parser
============================
Batting and pitching lines for one team, registering each player as it goes.

Pitching tables do not always carry the same trailing columns (pitches,
strikes, ERA), so those are inferred from the leftover numbers.
"""

import re
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Union

from scorebook.parsing.game_metadata_parser import parse_decision_code, parse_decision_record
from scorebook.parsing.name_to_id_mapper import PlayerRegistry
from scorebook.parsing.parsing_utils import (
    CellValue,
    normalize_cell,
    normalize_player_display_name,
    parse_integer,
    parse_number,
    to_optional_string,
)
from scorebook.parsing.tables import StatsTable, StatsTableRow

Number = Union[int, float]

_TEAM_TOTAL_RE = re.compile(r'^totals?$', re.IGNORECASE)
_DECISION_RE = re.compile(r'^[WLS]\b', re.IGNORECASE)

MAX_PLAUSIBLE_ERA = 30
MAX_PLAUSIBLE_PITCHES = 250


@dataclass(frozen=True)
class BattingLine:
    player_id: Optional[str]
    jersey: Optional[int]
    player: str
    position: Optional[str]
    ab: Optional[int]
    r: Optional[int]
    h: Optional[int]
    rbi: Optional[int]
    bb: Optional[int]
    k: Optional[int]
    lob: Optional[int]
    sb: Optional[int]
    cs: Optional[int]
    avg: Optional[str]
    is_team_total: bool


@dataclass(frozen=True)
class PitchFigures:
    pitches: Optional[Number] = None
    strikes: Optional[Number] = None
    era: Optional[Number] = None


@dataclass(frozen=True)
class PitchingLine:
    player_id: Optional[str]
    jersey: Optional[int]
    player: str
    decision: Optional[str]
    decision_code: Optional[str]
    decision_record: Optional[str]
    ip: Optional[Number]
    h: Optional[int]
    r: Optional[int]
    er: Optional[int]
    bb: Optional[int]
    k: Optional[int]
    wp: Optional[int]
    bk: Optional[int]
    hbp: Optional[int]
    batters_faced: Optional[int]
    pitches: Optional[Number]
    strikes: Optional[Number]
    era: Optional[Number]
    raw_cells: List[CellValue] = field(default_factory=list)


def _first_value(row: StatsTableRow, *keys: str) -> CellValue:
    for key in keys:
        value = row.values.get(key)
        if value is not None:
            return value
    return None


def parse_batting_table(table: Optional[StatsTable], side: str, registry: PlayerRegistry) -> List[BattingLine]:
    """
    Parse a team's box score batting table.

    Args:
        table: 'Box Score' table (may be None)
        side: 'away' or 'home'
        registry: Player registry to register batters into

    Returns:
        One BattingLine per row with a player; the totals row is kept but
        flagged and never registered
    """
    if table is None:
        return []

    lines = []
    for row in table.rows:
        raw_player = to_optional_string(_first_value(row, 'player', 'col_3'))
        if not raw_player:
            continue

        jersey = parse_integer(_first_value(row, 'col_2', '#'))
        position = to_optional_string(row.values.get('pos'))
        is_team_total = bool(_TEAM_TOTAL_RE.match(raw_player))
        player_id = None if is_team_total else registry.register(side, raw_player, jersey, position)

        lines.append(BattingLine(
            player_id=player_id,
            jersey=jersey,
            player=normalize_player_display_name(raw_player) or raw_player,
            position=position,
            ab=parse_integer(row.values.get('ab')),
            r=parse_integer(row.values.get('r')),
            h=parse_integer(row.values.get('h')),
            rbi=parse_integer(row.values.get('rbi')),
            bb=parse_integer(row.values.get('bb')),
            k=parse_integer(row.values.get('k')),
            lob=parse_integer(_first_value(row, 'lob', 'l')),
            sb=parse_integer(row.values.get('sb')),
            cs=parse_integer(row.values.get('cs')),
            avg=to_optional_string(row.values.get('avg')),
            is_team_total=is_team_total,
        ))

    return lines


# =============================================================================
# Trailing pitching columns
# =============================================================================

def _is_integral(value: Number) -> bool:
    return float(value).is_integer()


def pitches_strikes_and_era(values: Sequence[Number]) -> Optional[PitchFigures]:
    """Three trailing values ending in a non-integer ERA"""
    if len(values) < 3:
        return None
    third_last, second_last, last = values[-3], values[-2], values[-1]
    if last > MAX_PLAUSIBLE_ERA or _is_integral(last):
        return None
    return PitchFigures(
        pitches=max(third_last, second_last),
        strikes=second_last if third_last >= second_last else third_last,
        era=last,
    )


def pitches_and_strikes(values: Sequence[Number]) -> Optional[PitchFigures]:
    """Pitch count followed by strikes"""
    if len(values) < 2:
        return None
    second_last, last = values[-2], values[-1]
    if second_last >= last and second_last <= MAX_PLAUSIBLE_PITCHES:
        return PitchFigures(pitches=second_last, strikes=last)
    return None


def era_only(values: Sequence[Number]) -> Optional[PitchFigures]:
    last = values[-1]
    return PitchFigures(era=last if last <= MAX_PLAUSIBLE_ERA else None)


TRAILING_COLUMN_RULES: List[Callable[[Sequence[Number]], Optional[PitchFigures]]] = [
    pitches_strikes_and_era,
    pitches_and_strikes,
    era_only,
]


def infer_pitch_count_and_era(values: Sequence[Number]) -> PitchFigures:
    """First rule that recognises the trailing numbers wins"""
    if not values:
        return PitchFigures()
    for rule in TRAILING_COLUMN_RULES:
        figures = rule(values)
        if figures is not None:
            return figures
    return PitchFigures()


def parse_pitching_row(row: StatsTableRow, side: str, registry: PlayerRegistry) -> Optional[PitchingLine]:
    """Positional read: #, player, optional decision, IP H R ER BB K WP BK HBP BF, then extras"""
    cells = row.cells

    def cell(index: int) -> CellValue:
        return cells[index] if index < len(cells) else None

    raw_player = to_optional_string(cell(1))
    if not raw_player:
        return None

    index = 2
    decision = None
    maybe_decision = to_optional_string(cell(index))
    if maybe_decision and _DECISION_RE.match(maybe_decision):
        decision = maybe_decision
        index += 1

    ip = parse_number(cell(index))
    h, r, er, bb, k, wp, bk, hbp, batters_faced = (parse_integer(cell(index + offset)) for offset in range(1, 10))
    index += 10

    trailing = [value for value in (parse_number(value) for value in cells[index:]) if value is not None]
    figures = infer_pitch_count_and_era(trailing)

    return PitchingLine(
        player_id=registry.register(side, raw_player, parse_integer(cell(0)), 'p'),
        jersey=parse_integer(cell(0)),
        player=normalize_player_display_name(raw_player) or raw_player,
        decision=decision,
        decision_code=parse_decision_code(decision),
        decision_record=parse_decision_record(decision),
        ip=ip,
        h=h,
        r=r,
        er=er,
        bb=bb,
        k=k,
        wp=wp,
        bk=bk,
        hbp=hbp,
        batters_faced=batters_faced,
        pitches=figures.pitches,
        strikes=figures.strikes,
        era=figures.era,
        raw_cells=[normalize_cell(value) for value in cells],
    )


def parse_pitching_table(table: Optional[StatsTable], side: str, registry: PlayerRegistry) -> List[PitchingLine]:
    if table is None:
        return []
    return [line for line in (parse_pitching_row(row, side, registry) for row in table.rows) if line]
