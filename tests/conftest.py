"""Shared fixtures: a small two-inning final game and live play-by-play builders."""

import pytest

from scorebook.parsing.events_parser import InningPlayByPlay, PlayByPlayRow, ScoringPlayRow
from scorebook.parsing.game_metadata_parser import (
    EventMeta,
    LineScore,
    LineScoreRow,
    LiveSummary,
    PitcherDecision,
    PitcherDecisions,
)
from scorebook.parsing.tables import StatsSection, build_table
from scorebook.pipeline.scorekeeping import FinalGame, FinalScore, TeamStats

PLAY_HEADERS = ['', 'Play', 'Scoring Dec.', 'Batter', 'Pitcher', 'Outs']
BOX_HEADERS = ['', '#', 'Player', 'Pos', 'AB', 'R', 'H', 'RBI', 'BB', 'K', 'LOB', 'AVG']
PITCHING_HEADERS = ['#', 'Player', 'Dec', 'IP', 'H', 'R', 'ER', 'BB', 'K', 'WP', 'BK', 'HBP', 'BF', 'P', 'S', 'ERA']


@pytest.fixture
def event_meta():
    return EventMeta(
        id=636528,
        title='Troy at Southern Miss',
        sport='bsgame',
        xml_file='usm/636528.xml',
        date='2025-03-01',
        venue='Pete Taylor Park',
        home_name='Southern Miss',
        visitor_name='Troy',
    )


@pytest.fixture
def line_score():
    headers = ['Team', '1', '2', 'R', 'H', 'E']
    return LineScore(headers=headers, rows=[
        LineScoreRow(team='TROY', columns={'team': 'TROY', 'inning_1': 0, 'inning_2': 1, 'r': 1, 'h': 2, 'e': 0}),
        LineScoreRow(team='USM', columns={'team': 'USM', 'inning_1': 2, 'inning_2': 0, 'r': 2, 'h': 3, 'e': 1}),
    ])


@pytest.fixture
def final_summary(event_meta, line_score):
    return LiveSummary(
        id=event_meta.id,
        event=event_meta,
        status_text='Final',
        visitor_team='Troy',
        home_team='Southern Miss',
        visitor_score=1,
        home_score=2,
        line_score=line_score,
    )


@pytest.fixture
def final_game(event_meta, final_summary):
    away_box = build_table(BOX_HEADERS, [
        [None, 1, 'Smith, Al', 'CF', 1, 0, 0, 0, 0, 1, 0, '.250'],
        [None, 2, 'Brown, Ed', 'SS', 1, 0, 2, 1, 0, 0, 0, '.300'],
        [None, 3, 'Adams, Ty', 'LF', 1, 1, 0, 0, 0, 0, 0, '.200'],
        [None, None, 'Totals', None, 3, 1, 2, 1, 0, 1, 0, None],
    ])
    home_box = build_table(BOX_HEADERS, [
        [None, 7, 'Jones, Tim', 'C', 1, 1, 2, 2, 0, 0, 0, '.333'],
        [None, 9, 'Lee, Max', '1B', 1, 1, 1, 0, 0, 0, 0, '.280'],
        [None, None, 'Totals', None, 2, 2, 3, 2, 0, 0, 0, None],
    ])
    away_pitching = build_table(PITCHING_HEADERS, [
        [21, 'Miller, Jake', 'L (0-1)', 8.0, 3, 2, 2, 1, 5, 0, 0, 0, 30, 110, 70, 3.1],
    ])
    home_pitching = build_table(PITCHING_HEADERS, [
        [33, 'Doe, John', 'W (2-0)', 9.0, 2, 1, 1, 0, 9, 0, 0, 0, 31, 105, 68, 1.95],
    ])

    innings = [
        InningPlayByPlay(inning=1, title='1st Inning Play-by-play', events=[
            PlayByPlayRow(type='half', half='top', text='Top of the 1st'),
            PlayByPlayRow(type='play', half=None, text='Smith struck out swinging (1-2 KBFS).',
                          action='K', batter='Smith, Al', pitcher='Doe, John', outs=1),
            PlayByPlayRow(type='half', half='bottom', text='Bottom of the 1st'),
            PlayByPlayRow(type='play', half=None, text='Jones homered to left field, Lee scored.',
                          action='HR', batter='Jones, Tim', pitcher='Miller, Jake', outs=0),
            PlayByPlayRow(type='summary', half=None, text='Inning Summary: 2 Runs, 1 Hit'),
        ]),
        InningPlayByPlay(inning=2, title='2nd Inning Play-by-play', events=[
            PlayByPlayRow(type='half', half='top', text='Top of the 2nd'),
            PlayByPlayRow(type='play', half=None, text='Brown singled to center field, Adams scored.',
                          action='1B', batter='Brown, Ed', pitcher='Doe, John', outs=1),
        ]),
    ]

    scoring_plays = [
        ScoringPlayRow(team='USM', inning='Bot 1st', scoring_decision='HR 7 2RBI',
                       play='Jones homered to left field, Lee scored.',
                       batter='Jones, Tim', pitcher='Miller, Jake', outs=0),
        ScoringPlayRow(team='TROY', inning='Top 2nd', scoring_decision='1B 8 1RBI',
                       play='Brown singled up the middle, Adams scored.',
                       batter='Brown, Ed', pitcher='Doe, John', outs=1),
        ScoringPlayRow(team='TROY', inning='Top 2nd', scoring_decision=None,
                       play='Adams stole home.', batter=None, pitcher=None, outs=1),
    ]

    return FinalGame(
        id=event_meta.id,
        event=event_meta,
        status='final',
        summary=final_summary,
        final_score=FinalScore(visitor_team='Troy', home_team='Southern Miss',
                               visitor_score=1, home_score=2, winner='home'),
        pitcher_decisions=PitcherDecisions(
            winning=PitcherDecision(team='home', player='Doe, John', code='W', record='(2-0)', raw='W (2-0)'),
            losing=PitcherDecision(team='away', player='Miller, Jake', code='L', record='(0-1)', raw='L (0-1)'),
        ),
        lineups={'away': [], 'home': []},
        visitor_stats=TeamStats(box_score=away_box, pitching=away_pitching),
        home_stats=TeamStats(box_score=home_box, pitching=home_pitching),
        scoring_plays=scoring_plays,
        play_by_play_by_inning=innings,
        game_information={'Attendance': '1,234', 'Duration': '2:45', 'HP': 'Bob Ump', 'Umpires': 'HP: Bob Ump'},
        fetched_at='2025-03-01T20:00:00+00:00',
    )


@pytest.fixture
def play_section():
    """Build a live 'Nth Inning Play-by-play' section from raw rows"""
    def build(title, rows):
        return StatsSection(title=title, tables=[build_table(PLAY_HEADERS, rows)])
    return build
