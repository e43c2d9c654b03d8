from scorebook.parsing.tables import (
    align_cells_to_headers,
    build_column_map,
    build_table,
    find_section,
    first_table,
    normalize_column_key,
    parse_stats_sections,
    read_cell_by_header,
)

BOX_HTML = """
<div class="card">
  <div class="card-header">Box Score</div>
  <table>
    <thead><tr><th>Player</th><th>AB</th><th>AVG</th></tr></thead>
    <tbody>
      <tr><td>Smith, Al</td><td>4</td><td>.250</td></tr>
      <tr><td>Brown, Ed</td><td>3</td><td>0.300</td></tr>
    </tbody>
  </table>
</div>
<div class="card"><div class="card-header">No tables here</div></div>
<div class="card">
  <table><tr><td>Attendance</td><td>1,234</td></tr></table>
</div>
"""


class TestColumnKeys:
    def test_normalize_column_key(self):
        assert normalize_column_key('Scoring Dec.', 0) == 'scoring_dec'
        assert normalize_column_key('3', 1) == 'inning_3'
        assert normalize_column_key('', 4) == 'col_5'
        assert normalize_column_key('#', 1) == 'col_2'

    def test_short_row_with_blank_leading_header(self):
        assert align_cells_to_headers(['', 'A', 'B'], ['x', 'y']) == [None, 'x', 'y']

    def test_short_row_with_blank_trailing_header(self):
        assert align_cells_to_headers(['A', 'B', ''], ['x', 'y']) == ['x', 'y', None]

    def test_other_mismatch_unchanged(self):
        assert align_cells_to_headers(['A', 'B', 'C'], ['x']) == ['x']

    def test_blank_headers_skipped_when_cells_match_named_columns(self):
        assert build_column_map(['', 'Play', 'Outs'], ['singled', 1]) == {'play': 'singled', 'outs': 1}


class TestReadCell:
    def test_read_cell_by_header(self):
        table = build_table(['', 'Play', 'Outs'], [['K', 'Smith struck out.', 2]])
        row = table.rows[0]
        assert read_cell_by_header(table, row, r'^outs$') == 2
        assert read_cell_by_header(table, row, r'^play$') == 'Smith struck out.'
        assert read_cell_by_header(table, row, r'^batter$') is None


class TestHtmlAdapter:
    def test_sections_from_cards(self):
        sections = parse_stats_sections(BOX_HTML)

        assert [section.title for section in sections] == ['Box Score', 'Stats']
        table = first_table(find_section(sections, r'box score'))
        assert table.headers == ['Player', 'AB', 'AVG']
        assert table.rows[0].values == {'player': 'Smith, Al', 'ab': 4, 'avg': '.250'}
        assert table.rows[1].values['avg'] == 0.3

    def test_headerless_table_gets_positional_headers(self):
        sections = parse_stats_sections(BOX_HTML)
        table = first_table(sections[1])
        assert table.headers == ['col_1', 'col_2']
        assert table.rows[0].cells == ['Attendance', '1,234']

    def test_empty_html(self):
        assert parse_stats_sections('') == []
        assert find_section([], r'box') is None
        assert first_table(None) is None
