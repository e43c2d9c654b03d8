import pytest
from bs4 import BeautifulSoup

from scorebook.parsing.game_metadata_parser import (
    EventMeta,
    LiveSummary,
    PitcherDecision,
    PitcherDecisions,
    build_line_score,
    clean_player_name,
    clean_team_short_name,
    determine_final_status,
    determine_winner,
    extract_game_information,
    is_final_status,
    list_game_innings,
    parse_event_xml,
    parse_line_score,
    parse_live_summary,
    parse_lineups,
    parse_pitcher_decisions,
)
from scorebook.parsing.tables import StatsSection, build_table

EVENT_XML = """
<event id="636528" completed="1" homename="Southern Miss" visitorname="Troy">
  <title>Troy at Southern Miss</title>
  <sport>bsgame</sport>
  <xmlfile>usm/636528.xml</xmlfile>
  <date>03/01/2025</date>
</event>
"""

LINE_SCORE_CARD = """
<div class="card">
  <div class="card-header">Game Line Score</div>
  <table>
    <thead><tr><th>Team</th><th>1</th><th>2</th><th>3</th><th>R</th><th>H</th><th>E</th></tr></thead>
    <tbody>
      <tr><td>TROY</td><td>0</td><td>1</td><td></td><td>1</td><td>3</td><td>0</td></tr>
      <tr><td>USM</td><td>2</td><td>0</td><td></td><td>2</td><td>4</td><td>1</td></tr>
    </tbody>
  </table>
</div>
"""

LIVE_PAGE = """
<div class="statusbar d-none d-md-block">
  <div class="sb-teamnameV"><i class="fa fa-caret-right"></i> Troy</div>
  <div class="sb-teamscore">1</div>
  <div class="sb-teamnameH">Southern Miss</div>
  <div class="sb-teamscore">2</div>
  <div class="sb-statusbar-clock">
    <div class="font-size-125">Top 3rd</div>
    <div class="font-size-125">1-2</div>
    <div class="base-indicator">
      <span class="d-inline d-sm-none">1</span>
      <span class="sbicon font-size-300">5</span>
    </div>
  </div>
  <div class="sb-indicator-timeouts">At Bat: #12 Smith, Al</div>
  <div class="sb-indicator-timeouts">On Mound: #21 Jake Miller (L)</div>
</div>
<div class="card">
  <div class="card-header">Pitching For TROY: Tom Gray</div>
  <table><thead><tr><th>IP</th><th>PC</th></tr></thead><tbody><tr><td>5.0</td><td>80</td></tr></tbody></table>
</div>
<div class="card">
  <div class="card-header">Pitching For USM: Jake Miller</div>
  <table><thead><tr><th>IP</th><th>PC</th></tr></thead><tbody><tr><td>2.1</td><td>42</td></tr></tbody></table>
</div>
""" + LINE_SCORE_CARD


def _event(**overrides):
    values = dict(id=636528, title='Troy at Southern Miss', sport='bsgame', xml_file='usm/636528.xml',
                  home_name='Southern Miss', visitor_name='Troy')
    values.update(overrides)
    return EventMeta(**values)


def _summary(status_text=None, situation=None, event=None):
    return LiveSummary(id=636528, event=event or _event(), status_text=status_text, visitor_team='Troy',
                       home_team='Southern Miss', visitor_score=1, home_score=2, situation=situation)


class TestEventXml:
    def test_fields(self):
        event = parse_event_xml(636528, EVENT_XML)

        assert event.title == 'Troy at Southern Miss'
        assert event.sport == 'bsgame'
        assert event.xml_file == 'usm/636528.xml'
        assert event.date == '03/01/2025'
        assert event.venue is None
        assert event.home_name == 'Southern Miss'
        assert event.visitor_name == 'Troy'
        assert event.completed is True

    def test_no_event_element(self):
        with pytest.raises(ValueError):
            parse_event_xml(1, '<error>not found</error>')

    def test_missing_xml_file(self):
        with pytest.raises(ValueError):
            parse_event_xml(1, '<event><sport>bsgame</sport></event>')


class TestLiveSummary:
    def test_status_bar(self):
        summary = parse_live_summary(_event(), LIVE_PAGE)

        assert summary.visitor_team == 'Troy'
        assert summary.home_team == 'Southern Miss'
        assert (summary.visitor_score, summary.home_score) == (1, 2)
        assert summary.status_text == 'Top 3rd'

    def test_situation(self):
        situation = parse_live_summary(_event(), LIVE_PAGE).situation

        assert (situation.half, situation.inning) == ('top', 3)
        assert (situation.balls, situation.strikes, situation.outs) == (1, 2, 1)
        assert situation.base_mask == 5
        assert situation.bases == {'first': True, 'second': False, 'third': True}
        assert situation.batting_team == 'away'
        assert situation.batter == 'Smith, Al'
        assert situation.pitcher.name == 'Jake Miller'
        assert situation.pitcher.pitch_count == 42

    def test_empty_page_uses_event_names(self):
        summary = parse_live_summary(_event(), '')

        assert summary.visitor_team == 'Troy'
        assert summary.home_team == 'Southern Miss'
        assert summary.visitor_score is None
        assert summary.status_text is None
        assert summary.situation is None
        assert summary.line_score is None

    def test_clean_player_name(self):
        assert clean_player_name('#7 Jones, Tim [R]') == 'Jones, Tim'
        assert clean_player_name('  ') is None


class TestFinalStatus:
    def test_is_final(self):
        assert is_final_status(_summary('Final')) is True
        assert is_final_status(_summary('Top 3rd')) is False
        assert is_final_status(_summary(None)) is False
        assert is_final_status(_summary(None, event=_event(completed=True))) is True

    def test_determine_final_status(self):
        both = PitcherDecisions(
            winning=PitcherDecision(team='home', player='Doe', code='W', record=None, raw='W'),
            losing=PitcherDecision(team='away', player='Miller', code='L', record=None, raw='L'),
        )
        assert determine_final_status(_summary('Final/10'), PitcherDecisions()) == 'final'
        assert determine_final_status(_summary('Bot 9th'), both) == 'not_final'
        assert determine_final_status(_summary(None), both) == 'final'
        assert determine_final_status(_summary(None), PitcherDecisions()) == 'unknown'

    def test_winner(self):
        assert determine_winner(1, 2) == 'home'
        assert determine_winner(3, 2) == 'visitor'
        assert determine_winner(2, 2) is None
        assert determine_winner(None, 1) is None


class TestLineScore:
    def test_parse_and_build(self):
        line_score = parse_line_score(BeautifulSoup(LINE_SCORE_CARD, 'html.parser'))

        assert [row.team for row in line_score.rows] == ['TROY', 'USM']
        assert line_score.rows[1].innings == {1: 2, 2: 0, 3: None}

        parsed = build_line_score(line_score)
        assert parsed.innings == [1, 2, 3]
        assert parsed.away_by_inning == [0, 1, None]
        assert parsed.home_totals.runs == 2
        assert parsed.home_totals.errors == 1
        assert parsed.home_totals.left_on_base is None

    def test_no_card(self):
        assert parse_line_score(BeautifulSoup('<div class="card"></div>', 'html.parser')) is None
        assert build_line_score(None).innings == []

    def test_innings(self):
        line_score = parse_line_score(BeautifulSoup(LINE_SCORE_CARD, 'html.parser'))
        assert list_game_innings(line_score) == [1, 2, 3]
        assert list_game_innings(None) == list(range(1, 10))

    def test_short_name(self):
        assert clean_team_short_name('#12 USM') == 'USM'
        assert clean_team_short_name('-') is None


class TestDecisionsAndLineups:
    def test_pitcher_decisions(self):
        headers = ['#', 'Player', 'Dec', 'IP']
        away = build_table(headers, [[21, 'Miller, Jake', 'W (3-1)', 6.0], [30, 'Gray, Tom', None, 3.0]])
        home = build_table(headers, [[33, 'Doe, John', 'L (0-2)', 8.0], [40, 'Fox, Ned', 'S (4)', 1.0]])

        decisions = parse_pitcher_decisions(away, home)

        assert decisions.winning.team == 'away'
        assert decisions.winning.player == 'Miller, Jake'
        assert decisions.winning.record == '(3-1)'
        assert decisions.losing.player == 'Doe, John'
        assert decisions.save.code == 'S'
        assert parse_pitcher_decisions(None, None) == PitcherDecisions()

    def test_lineups_matched_by_team_name(self):
        headers = ['Spot', 'Pos', 'Player', 'Bats', 'Today', 'AVG']
        sections = [
            StatsSection(title='Southern Miss Starting Lineup',
                         tables=[build_table(headers, [[1, 'SS', 'Jones, Tim', 'R', '1-3', '.310']])]),
            StatsSection(title='Troy Starting Lineup',
                         tables=[build_table(headers, [[1, 'CF', 'Smith, Al', 'L', '0-2', '.275']])]),
        ]

        lineups = parse_lineups(sections, _summary())

        assert lineups['away'][0].player == 'Smith, Al'
        assert lineups['home'][0].player == 'Jones, Tim'
        assert lineups['home'][0].spot == 1
        assert lineups['home'][0].avg == '.310'

    def test_lineups_fall_back_to_order(self):
        headers = ['Spot', 'Player']
        sections = [
            StatsSection(title='Lineup A', tables=[build_table(headers, [[1, 'First, Al']])]),
            StatsSection(title='Lineup B', tables=[build_table(headers, [[1, 'Second, Bo']])]),
        ]
        lineups = parse_lineups(sections, _summary())
        assert lineups['away'][0].player == 'First, Al'
        assert lineups['home'][0].player == 'Second, Bo'

    def test_game_information(self):
        table = build_table([], [['Attendance:', '1,234'], ['Duration:', '2:45'], [None, 'x']])
        info = extract_game_information([StatsSection(title='Game Information', tables=[table])])
        assert info == {'Attendance': '1,234', 'Duration': '2:45'}
        assert extract_game_information([]) == {}
