"""
Stats table model
=================
Generic header/row/cell structure the rest of the pipeline consumes, plus the
BeautifulSoup adapter that turns stats-page ``.card`` blocks into sections.
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Union

from bs4 import BeautifulSoup

from scorebook.parsing.parsing_utils import CellValue, clean_text

_INT_CELL_RE = re.compile(r'^-?\d+$')
_FLOAT_CELL_RE = re.compile(r'^-?\d+\.\d+$')


@dataclass(frozen=True)
class StatsTableRow:
    cells: List[CellValue]
    values: Dict[str, CellValue] = field(default_factory=dict)


@dataclass(frozen=True)
class StatsTable:
    headers: List[str]
    rows: List[StatsTableRow]


@dataclass(frozen=True)
class StatsSection:
    title: str
    tables: List[StatsTable]


def align_cells_to_headers(headers: Sequence[str], cells: Sequence[CellValue]) -> List[CellValue]:
    """
    Line cells up with headers when the row is one cell short.

    A blank leading header means the row skipped that column, so a None is
    prepended; a blank trailing header gets a None appended. Any other length
    mismatch is returned unchanged for positional access.
    """
    cells = list(cells)
    if len(headers) == len(cells):
        return cells

    if len(headers) == len(cells) + 1:
        if clean_text(headers[0]) == '':
            return [None] + cells
        if clean_text(headers[-1]) == '':
            return cells + [None]

    return cells


def normalize_column_key(header: str, index: int) -> str:
    """'Scoring Dec.' -> 'scoring_dec', '3' -> 'inning_3', '' -> 'col_N'"""
    clean = clean_text(header).lower()
    if not clean:
        return f"col_{index + 1}"

    if clean.isdigit():
        return f"inning_{clean}"

    return re.sub(r'[^a-z0-9]+', '_', clean).strip('_') or f"col_{index + 1}"


def build_column_map(headers: Sequence[str], cells: Sequence[CellValue]) -> Dict[str, CellValue]:
    non_blank = [(index, header) for index, header in enumerate(headers) if clean_text(header)]

    if non_blank and len(non_blank) == len(cells):
        return {
            normalize_column_key(header, index): cells[compact_index]
            for compact_index, (index, header) in enumerate(non_blank)
        }

    aligned = align_cells_to_headers(headers, cells)
    return {
        normalize_column_key(header, index): aligned[index] if index < len(aligned) else None
        for index, header in enumerate(headers)
    }


def build_row(headers: Sequence[str], cells: Sequence[CellValue]) -> StatsTableRow:
    headers = list(headers) or [f"col_{index + 1}" for index in range(len(cells))]
    return StatsTableRow(cells=list(cells), values=build_column_map(headers, cells))


def build_table(headers: Sequence[str], rows: Sequence[Sequence[CellValue]]) -> StatsTable:
    """Build a table from plain header and cell lists (test fixtures, other adapters)"""
    return StatsTable(headers=list(headers), rows=[build_row(headers, cells) for cells in rows])


def read_cell_by_header(
    table: StatsTable,
    row: StatsTableRow,
    pattern: Union[str, re.Pattern],
) -> CellValue:
    """Aligned cell under the first header matching ``pattern`` (case-insensitive)"""
    regex = re.compile(pattern, re.IGNORECASE) if isinstance(pattern, str) else pattern
    for index, header in enumerate(table.headers):
        if regex.search(clean_text(header)):
            aligned = align_cells_to_headers(table.headers, row.cells)
            return aligned[index] if index < len(aligned) else None
    return None


def coerce_cell_value(raw: str) -> CellValue:
    if not raw:
        return None
    if _INT_CELL_RE.match(raw):
        return int(raw)
    if _FLOAT_CELL_RE.match(raw):
        return float(raw)
    return raw


def find_section(sections: Sequence[StatsSection], pattern: str) -> Optional[StatsSection]:
    regex = re.compile(pattern, re.IGNORECASE)
    for section in sections:
        if regex.search(section.title):
            return section
    return None


def first_table(section: Optional[StatsSection]) -> Optional[StatsTable]:
    if section is None or not section.tables:
        return None
    return section.tables[0]


# =============================================================================
# HTML adapter
# =============================================================================

def parse_stats_table(table_tag) -> StatsTable:
    """Parse one <table> element into a StatsTable"""
    headers = [clean_text(th.get_text()) for th in table_tag.select('thead th')]

    row_tags = table_tag.select('tbody tr') or table_tag.find_all('tr')
    raw_rows: List[List[CellValue]] = []

    for row_tag in row_tags:
        cell_tags = row_tag.find_all(['th', 'td'])
        if not cell_tags:
            continue

        cells = [coerce_cell_value(clean_text(cell.get_text())) for cell in cell_tags]

        # Header row living in the body
        if not headers and row_tag.find('th') and not row_tag.find('td'):
            headers = ['' if value is None else str(value) for value in cells]
            continue

        raw_rows.append(cells)

    if not headers and raw_rows:
        headers = [f"col_{index + 1}" for index in range(len(raw_rows[0]))]

    return build_table(headers, raw_rows)


def parse_stats_sections(html: str) -> List[StatsSection]:
    """Every ``.card`` with at least one non-empty table becomes a section"""
    soup = BeautifulSoup(html or '', 'html.parser')
    sections = []

    for card in soup.select('.card'):
        header = card.select_one('.card-header')
        title = clean_text(header.get_text()) if header else ''

        tables = [parse_stats_table(tag) for tag in card.find_all('table')]
        tables = [table for table in tables if table.rows or table.headers]
        if not tables:
            continue

        sections.append(StatsSection(title=title or 'Stats', tables=tables))

    return sections
