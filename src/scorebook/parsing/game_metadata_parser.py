"""
Game Metadata Extraction
========================
Event metadata, the live status bar (teams, score, situation), line score,
pitcher decisions, lineups and game information for one game.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from bs4 import BeautifulSoup

from scorebook.parsing.parsing_utils import (
    CellValue,
    clean_text,
    normalize_name_key,
    parse_integer,
    to_optional_string,
)
from scorebook.parsing.tables import (
    StatsSection,
    StatsTable,
    StatsTableRow,
    align_cells_to_headers,
    find_section,
    first_table,
    normalize_column_key,
    read_cell_by_header,
)

FINAL_STATUS_RE = re.compile(r'\bfinal\b|game over|ended|complete(d)?', re.IGNORECASE)


@dataclass(frozen=True)
class EventMeta:
    id: int
    title: str
    sport: str
    xml_file: str
    date: Optional[str] = None
    time: Optional[str] = None
    venue: Optional[str] = None
    location: Optional[str] = None
    home_name: str = ''
    visitor_name: str = ''
    completed: bool = False


@dataclass(frozen=True)
class PitcherSnapshot:
    name: Optional[str] = None
    pitch_count: Optional[int] = None


@dataclass(frozen=True)
class LiveSituation:
    inning_text: Optional[str] = None
    half: Optional[str] = None
    inning: Optional[int] = None
    balls: Optional[int] = None
    strikes: Optional[int] = None
    outs: Optional[int] = None
    base_mask: Optional[int] = None
    batting_team: Optional[str] = None
    batter: Optional[str] = None
    pitcher: PitcherSnapshot = field(default_factory=PitcherSnapshot)

    @property
    def bases(self) -> Dict[str, bool]:
        mask = self.base_mask or 0
        return {'first': bool(mask & 1), 'second': bool(mask & 2), 'third': bool(mask & 4)}


@dataclass(frozen=True)
class LineScoreRow:
    team: str
    columns: Dict[str, CellValue]

    @property
    def innings(self) -> Dict[int, Optional[int]]:
        return {
            int(key[len('inning_'):]): value if isinstance(value, int) else None
            for key, value in self.columns.items()
            if key.startswith('inning_')
        }


@dataclass(frozen=True)
class LineScore:
    headers: List[str]
    rows: List[LineScoreRow]


@dataclass(frozen=True)
class LiveSummary:
    """Status bar snapshot: read-only input for state derivation and post text"""
    id: int
    event: EventMeta
    status_text: Optional[str]
    visitor_team: str
    home_team: str
    visitor_score: Optional[int]
    home_score: Optional[int]
    line_score: Optional[LineScore] = None
    situation: Optional[LiveSituation] = None


@dataclass(frozen=True)
class PitcherDecision:
    team: str
    player: str
    code: str
    record: Optional[str]
    raw: str


@dataclass(frozen=True)
class PitcherDecisions:
    winning: Optional[PitcherDecision] = None
    losing: Optional[PitcherDecision] = None
    save: Optional[PitcherDecision] = None


@dataclass(frozen=True)
class LineupEntry:
    spot: Optional[int]
    position: Optional[str]
    player: str
    bats: Optional[str]
    today: Optional[str]
    avg: Optional[str]


@dataclass(frozen=True)
class TotalsLine:
    runs: Optional[int] = None
    hits: Optional[int] = None
    errors: Optional[int] = None
    left_on_base: Optional[int] = None


@dataclass(frozen=True)
class ParsedLineScore:
    innings: List[int]
    away_by_inning: List[Optional[int]]
    home_by_inning: List[Optional[int]]
    away_totals: TotalsLine
    home_totals: TotalsLine


# =============================================================================
# Event metadata
# =============================================================================

def parse_event_xml(event_id: int, xml: str) -> EventMeta:
    """
    Parse the event lookup document.

    Raises:
        ValueError: when the document has no usable <event> element
    """
    soup = BeautifulSoup(xml or '', 'html.parser')
    event = soup.find('event')
    if event is None:
        raise ValueError(f"No event element found for game id {event_id}")

    def child_text(name: str) -> str:
        node = event.find(name)
        return clean_text(node.get_text()) if node else ''

    xml_file = child_text('xmlfile')
    sport = child_text('sport')
    if not xml_file or not sport:
        raise ValueError(f"Missing xmlfile or sport for game id {event_id}")

    completed = str(event.get('completed', '')).lower()
    return EventMeta(
        id=event_id,
        title=child_text('title'),
        sport=sport,
        xml_file=xml_file,
        date=child_text('date') or None,
        time=child_text('time') or None,
        venue=child_text('venue') or None,
        location=child_text('location') or None,
        home_name=clean_text(event.get('homename')) or child_text('homename'),
        visitor_name=clean_text(event.get('visitorname')) or child_text('visitorname'),
        completed=completed in ('1', 'true'),
    )


# =============================================================================
# Live summary (status bar)
# =============================================================================

def parse_live_summary(event: EventMeta, html: str) -> LiveSummary:
    """Teams, score, status text, line score and situation from a stats page"""
    soup = BeautifulSoup(html or '', 'html.parser')
    status_root = soup.select_one('.statusbar.d-none.d-md-block') or soup.select_one('.statusbar')

    visitor_team = home_team = ''
    scores: List[int] = []
    status_text = None
    situation = None

    if status_root is not None:
        visitor_team = _select_text(status_root, '.sb-teamnameV')
        home_team = _select_text(status_root, '.sb-teamnameH')
        scores = [
            score for score in (parse_integer(node.get_text()) for node in status_root.select('.sb-teamscore'))
            if score is not None
        ]
        status_text = _select_text(status_root, '.sb-statusbar-clock .font-size-125') or None
        situation = parse_live_situation(soup, status_root, event)

    return LiveSummary(
        id=event.id,
        event=event,
        status_text=status_text,
        visitor_team=visitor_team or event.visitor_name,
        home_team=home_team or event.home_name,
        visitor_score=scores[0] if len(scores) > 0 else None,
        home_score=scores[1] if len(scores) > 1 else None,
        line_score=parse_line_score(soup),
        situation=situation,
    )


def _select_text(root, selector: str) -> str:
    node = root.select_one(selector)
    return clean_text(node.get_text()) if node else ''


def _indicator_person(status_root, label: str) -> Optional[str]:
    for node in status_root.select('.sb-indicator-timeouts'):
        text = clean_text(node.get_text())
        match = re.search(rf'{label}:\s*(.+)$', text, re.IGNORECASE)
        if match:
            return clean_player_name(match.group(1))
    return None


def clean_player_name(value: str) -> Optional[str]:
    """Strip jersey numbers, bracketed and parenthesized annotations"""
    text = re.sub(r'\[[^\]]+\]', '', clean_text(value))
    text = re.sub(r'\([^)]*\)', '', text)
    text = re.sub(r'^[#\d.\s-]+', '', text)
    text = re.sub(r'\s+', ' ', text).strip()
    return text or None


def _pitch_count_for(soup: BeautifulSoup, pitcher_name: Optional[str]) -> Optional[int]:
    cards = [
        card for card in soup.select('.card')
        if re.match(r'^pitching\s+for\b', _select_text(card, '.card-header'), re.IGNORECASE)
    ]
    if not cards:
        return None

    selected = cards[0]
    if pitcher_name:
        target = normalize_name_key(pitcher_name)
        for card in cards:
            if target in normalize_name_key(_select_text(card, '.card-header')):
                selected = card
                break

    headers = [clean_text(th.get_text()).upper() for th in selected.select('thead th')]
    first_row = selected.select_one('tbody tr')
    if first_row is None or 'PC' not in headers:
        return None

    values = align_cells_to_headers(headers, [clean_text(td.get_text()) for td in first_row.find_all('td')])
    index = headers.index('PC')
    return parse_integer(values[index]) if index < len(values) else None


def parse_live_situation(soup: BeautifulSoup, status_root, event: EventMeta) -> Optional[LiveSituation]:
    clock = status_root.select_one('.sb-statusbar-clock')
    if clock is None:
        return None

    lines = [text for text in (clean_text(node.get_text()) for node in clock.select('.font-size-125')) if text]
    inning_text = lines[0] if lines else None

    balls = strikes = None
    count_text = next((line for line in lines if re.match(r'^\d+\s*-\s*\d+$', line)), '')
    count_match = re.match(r'^(\d+)\s*-\s*(\d+)$', count_text)
    if count_match:
        balls, strikes = int(count_match.group(1)), int(count_match.group(2))

    half = inning = None
    inning_match = re.search(r'\b(top|bot)\s*(\d+)', inning_text or '', re.IGNORECASE)
    if inning_match:
        half = 'top' if inning_match.group(1).lower() == 'top' else 'bottom'
        inning = int(inning_match.group(2))

    outs = parse_integer(_select_text(clock, '.base-indicator .d-inline.d-sm-none'))
    base_mask = parse_integer(_select_text(clock, '.base-indicator .sbicon.font-size-300'))

    batting_team = None
    away_node = status_root.select_one('.sb-teamnameV')
    home_node = status_root.select_one('.sb-teamnameH')
    if away_node is not None and away_node.select_one('.fa-caret-right'):
        batting_team = 'away'
    elif home_node is not None and home_node.select_one('.fa-caret-right'):
        batting_team = 'home'

    batter = _indicator_person(status_root, 'At Bat')
    pitcher_name = _indicator_person(status_root, 'On Mound')
    pitch_count = _pitch_count_for(soup, pitcher_name) if pitcher_name else None

    if all(value is None for value in (
        inning_text, balls, strikes, outs, base_mask, batting_team, batter, pitcher_name, pitch_count
    )):
        return None

    return LiveSituation(
        inning_text=inning_text,
        half=half,
        inning=inning,
        balls=balls,
        strikes=strikes,
        outs=outs,
        base_mask=base_mask,
        batting_team=batting_team,
        batter=batter,
        pitcher=PitcherSnapshot(name=pitcher_name, pitch_count=pitch_count),
    )


def is_final_status(summary: LiveSummary) -> bool:
    if summary.event.completed:
        return True
    status = clean_text(summary.status_text).lower()
    return bool(status) and bool(FINAL_STATUS_RE.search(status))


# =============================================================================
# Line score
# =============================================================================

def parse_line_score(soup: BeautifulSoup) -> Optional[LineScore]:
    """The 'Game Line Score' card, or None when the page has none"""
    for card in soup.select('.card'):
        if 'game line score' not in _select_text(card, '.card-header').lower():
            continue

        table = card.find('table')
        if table is None:
            return None

        headers = [clean_text(th.get_text()) for th in table.select('thead th')]
        if not headers:
            return None

        rows = []
        for row_tag in table.select('tbody tr'):
            cells = align_cells_to_headers(headers, [clean_text(td.get_text()) for td in row_tag.find_all('td')])
            columns = {}
            for index, header in enumerate(headers):
                raw = cells[index] if index < len(cells) else ''
                key = normalize_column_key(header, index)
                number = parse_integer(raw)
                columns[key] = number if number is not None else raw
            rows.append(LineScoreRow(team=str(columns.get('team') or ''), columns=columns))

        return LineScore(headers=headers, rows=rows)

    return None


def build_line_score(line_score: Optional[LineScore]) -> ParsedLineScore:
    """Innings, per-inning runs and R/H/E/LOB totals for both sides"""
    if line_score is None or len(line_score.rows) < 2:
        return ParsedLineScore(
            innings=[], away_by_inning=[], home_by_inning=[],
            away_totals=TotalsLine(), home_totals=TotalsLine(),
        )

    innings = [
        inning for inning in (parse_integer(header) for header in line_score.headers)
        if inning is not None and 0 < inning < 30
    ]
    away, home = line_score.rows[0], line_score.rows[1]

    def totals(row: LineScoreRow) -> TotalsLine:
        def first(*keys):
            for key in keys:
                if row.columns.get(key) is not None:
                    return parse_integer(row.columns[key])
            return None

        return TotalsLine(
            runs=first('r', 'runs'),
            hits=first('h', 'hits'),
            errors=first('e', 'errors'),
            left_on_base=first('lob', 'l'),
        )

    return ParsedLineScore(
        innings=innings,
        away_by_inning=[parse_integer(away.columns.get(f"inning_{inning}")) for inning in innings],
        home_by_inning=[parse_integer(home.columns.get(f"inning_{inning}")) for inning in innings],
        away_totals=totals(away),
        home_totals=totals(home),
    )


def list_game_innings(line_score: Optional[LineScore]) -> List[int]:
    """Innings with a line score column, or 1-9 when unknown"""
    innings = set()
    if line_score is not None:
        for header in line_score.headers:
            inning = parse_integer(header)
            if inning is not None and 0 < inning < 40:
                innings.add(inning)
        for row in line_score.rows:
            innings.update(inning for inning in row.innings if 0 < inning < 40)

    return sorted(innings) if innings else list(range(1, 10))


def clean_team_short_name(value: Optional[str]) -> Optional[str]:
    """Drop a leading ranking ('#12 USM' -> 'USM')"""
    clean = to_optional_string(value)
    return re.sub(r'^#\d+\s+', '', clean).strip() if clean else None


# =============================================================================
# Final status, winner, decisions
# =============================================================================

def determine_winner(visitor_score: Optional[int], home_score: Optional[int]) -> Optional[str]:
    """'visitor', 'home', or None for a tie or unknown score"""
    if visitor_score is None or home_score is None or visitor_score == home_score:
        return None
    return 'visitor' if visitor_score > home_score else 'home'


def determine_final_status(summary: LiveSummary, decisions: PitcherDecisions) -> str:
    status = clean_text(summary.status_text).lower()

    if re.search(r'final|game over|ended', status):
        return 'final'
    if re.search(r'(top|bot|middle|end)\s+\d', status):
        return 'not_final'
    if decisions.winning and decisions.losing:
        return 'final'
    if summary.situation is not None:
        return 'not_final'
    return 'unknown'


def parse_decision_code(value: Optional[str]) -> Optional[str]:
    """'W (3-1)' -> 'W'"""
    if not value:
        return None
    match = re.match(r'^([WLS])\b', value, re.IGNORECASE)
    return match.group(1).upper() if match else None


def parse_decision_record(value: Optional[str]) -> Optional[str]:
    """'W (3-1)' -> '(3-1)'"""
    if not value:
        return None
    match = re.match(r'^[WLS]\s+(.+)$', value.strip(), re.IGNORECASE)
    return match.group(1).strip() if match else None


def _find_decision_cell(table: StatsTable, row: StatsTableRow) -> Optional[str]:
    direct = to_optional_string(read_cell_by_header(table, row, r'^dec$'))
    if direct and re.match(r'^[wls]\b', direct, re.IGNORECASE):
        return direct

    for cell in row.cells:
        value = to_optional_string(cell)
        if value and re.match(r'^[wls]\b', value, re.IGNORECASE):
            return value
    return None


def extract_pitcher_decisions(team: str, table: Optional[StatsTable]) -> List[PitcherDecision]:
    if table is None:
        return []

    decisions = []
    for row in table.rows:
        player = to_optional_string(read_cell_by_header(table, row, r'^player$'))
        if player is None and len(row.cells) > 1:
            player = to_optional_string(row.cells[1])
        raw = _find_decision_cell(table, row)
        if not player or not raw:
            continue

        match = re.match(r'^([WLS])\s*(.*)$', clean_text(raw), re.IGNORECASE)
        if not match:
            continue

        decisions.append(PitcherDecision(
            team=team,
            player=player,
            code=match.group(1).upper(),
            record=clean_text(match.group(2)) or None,
            raw=raw,
        ))

    return decisions


def parse_pitcher_decisions(
    away_pitching: Optional[StatsTable],
    home_pitching: Optional[StatsTable],
) -> PitcherDecisions:
    found = extract_pitcher_decisions('away', away_pitching) + extract_pitcher_decisions('home', home_pitching)

    def first(code: str) -> Optional[PitcherDecision]:
        return next((decision for decision in found if decision.code == code), None)

    return PitcherDecisions(winning=first('W'), losing=first('L'), save=first('S'))


# =============================================================================
# Lineups and game information
# =============================================================================

def parse_lineup_table(table: Optional[StatsTable]) -> List[LineupEntry]:
    if table is None:
        return []

    entries = []
    for row in table.rows:
        player = to_optional_string(read_cell_by_header(table, row, r'^#?\s*player$'))
        if not player:
            continue
        entries.append(LineupEntry(
            spot=parse_integer(read_cell_by_header(table, row, r'^spot$')),
            position=to_optional_string(read_cell_by_header(table, row, r'^pos$')),
            player=player,
            bats=to_optional_string(read_cell_by_header(table, row, r'^bats$')),
            today=to_optional_string(read_cell_by_header(table, row, r'^today$')),
            avg=to_optional_string(read_cell_by_header(table, row, r'^avg$')),
        ))
    return entries


def _team_hints(summary: LiveSummary, side: str) -> List[str]:
    team_name = summary.visitor_team if side == 'away' else summary.home_team
    normalized = normalize_name_key(team_name)
    hints = {normalized} if normalized else set()

    parts = [part for part in normalized.split(' ') if len(part) > 1]
    hints.update(f"{a} {b}" for a, b in zip(parts, parts[1:]))

    row_index = 0 if side == 'away' else 1
    if summary.line_score and len(summary.line_score.rows) > row_index:
        abbreviation = normalize_name_key(summary.line_score.rows[row_index].team)
        if abbreviation:
            hints.add(abbreviation)

    return [hint for hint in hints if hint]


def parse_lineups(sections: Sequence[StatsSection], summary: LiveSummary) -> Dict[str, List[LineupEntry]]:
    """Match lineup cards to sides by team-name hints in the card title"""
    lineup_sections = [section for section in sections if re.search(r'line\s*up', section.title, re.IGNORECASE)]
    parsed = [(section, parse_lineup_table(first_table(section))) for section in lineup_sections]
    away_hints = _team_hints(summary, 'away')
    home_hints = _team_hints(summary, 'home')

    away = home = None
    for section, entries in parsed:
        if not entries:
            continue
        title = normalize_name_key(section.title)
        if away is None and any(hint in title for hint in away_hints):
            away = entries
        elif home is None and any(hint in title for hint in home_hints):
            home = entries

    fallback = [entries for _, entries in parsed]
    if away is None and len(fallback) > 0:
        away = fallback[0]
    if home is None and len(fallback) > 1:
        home = fallback[1]

    return {'away': away or [], 'home': home or []}


def extract_game_information(sections: Sequence[StatsSection]) -> Dict[str, CellValue]:
    """Key/value rows of the 'Game Information' card (Attendance, Duration, Umpires, ...)"""
    table = first_table(find_section(sections, r'game information'))
    if table is None:
        return {}

    info = {}
    for row in table.rows:
        key = to_optional_string(row.cells[0]) if row.cells else None
        if not key:
            continue
        info[re.sub(r':\s*$', '', key)] = row.cells[1] if len(row.cells) > 1 else None
    return info
