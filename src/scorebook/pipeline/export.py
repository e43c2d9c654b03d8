"""
CSV Export
==========
Flattens a scorekeeping document into pandas DataFrames and CSV files.
"""

import logging
import os
from typing import Any, Dict

import pandas as pd

from scorebook.parsing.name_to_id_mapper import Player, player_id_frame

logger = logging.getLogger(__name__)

PLAY_COLUMNS = [
    'play_id', 'source', 'inning', 'half', 'order', 'batting_side', 'batting_team',
    'batter_id', 'batter_name', 'pitcher_id', 'pitcher_name', 'outcome', 'tags',
    'runs_scored', 'is_scoring_play', 'outs_after_play', 'balls', 'strikes',
    'pitch_sequence', 'decision_raw', 'fielder_codes', 'location_source', 'text',
]


def plays_to_dataframe(data: Dict[str, Any]) -> pd.DataFrame:
    """One row per unified play, nested fields flattened"""
    rows = []
    for play in data.get('plays', []):
        participants = play['participants']
        result = play['result']
        pitch_context = play.get('pitch_context') or {}
        final_count = pitch_context.get('final_count') or {}

        rows.append({
            'play_id': play['play_id'],
            'source': play['source'],
            'inning': play['inning'],
            'half': play['half'],
            'order': play['order'],
            'batting_side': play['batting_side'],
            'batting_team': play['batting_team'],
            'batter_id': participants['batter_id'],
            'batter_name': participants['batter_name'],
            'pitcher_id': participants['pitcher_id'],
            'pitcher_name': participants['pitcher_name'],
            'outcome': str(getattr(result['outcome'], 'value', result['outcome'])),
            'tags': ','.join(result['tags']),
            'runs_scored': result['runs_scored'],
            'is_scoring_play': result['is_scoring_play'],
            'outs_after_play': result['outs_after_play'],
            'balls': final_count.get('balls'),
            'strikes': final_count.get('strikes'),
            'pitch_sequence': pitch_context.get('raw_sequence'),
            'decision_raw': play['scoring']['decision_raw'],
            'fielder_codes': ''.join(str(code) for code in play['batted_ball']['fielder_codes']),
            'location_source': play['batted_ball']['location_source'],
            'text': play['text'],
        })

    return pd.DataFrame(rows, columns=PLAY_COLUMNS)


def _box_score_frame(data: Dict[str, Any], kind: str) -> pd.DataFrame:
    rows = []
    for side, team in data.get('teams', {}).items():
        for line in team['box_score'][kind]:
            record = {key: value for key, value in line.items() if key != 'raw_cells'}
            rows.append({'side': side, 'team': team['name'], **record})
    return pd.DataFrame(rows)


def batting_to_dataframe(data: Dict[str, Any]) -> pd.DataFrame:
    return _box_score_frame(data, 'batting')


def pitching_to_dataframe(data: Dict[str, Any]) -> pd.DataFrame:
    return _box_score_frame(data, 'pitching')


def players_to_dataframe(data: Dict[str, Any]) -> pd.DataFrame:
    """Player id mapping from the document's participant records"""
    records = data.get('participants', {}).get('players', {}).values()
    return player_id_frame(Player(**record) for record in records)


def save_csv_reports(data: Dict[str, Any], output_dir: str) -> Dict[str, str]:
    """
    Save plays, batting, pitching and player CSVs for one game

    Args:
        data: Scorekeeping document
        output_dir: Directory to write into (created if missing)

    Returns:
        Dict of report name -> file path
    """
    os.makedirs(output_dir, exist_ok=True)
    game_id = data.get('game', {}).get('id', 'unknown')

    frames = {
        'plays': plays_to_dataframe(data),
        'batting': batting_to_dataframe(data),
        'pitching': pitching_to_dataframe(data),
        'players': players_to_dataframe(data),
    }

    paths = {}
    for name, frame in frames.items():
        path = os.path.join(output_dir, f"game_{game_id}_{name}.csv")
        frame.to_csv(path, index=False)
        paths[name] = path
        logger.info(f"📄 CSV report saved: {path} ({len(frame)} rows)")

    return paths
