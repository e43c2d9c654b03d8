"""
Scorekeeping cross-checks
=========================
Compares what the play-by-play reconstruction implies against the official
line score and box score totals. Findings are returned as warning strings;
nothing here raises on content.
"""

from typing import Dict, List, Sequence

import pandas as pd

from scorebook.parsing.appearances_parser import BattingLine
from scorebook.parsing.game_metadata_parser import ParsedLineScore, TotalsLine


def runs_by_inning_frame(plays: Sequence) -> pd.DataFrame:
    """Runs per (inning, side) from scoring plays with a known inning and batting side"""
    rows = [
        {'inning': play.inning, 'side': play.batting_side, 'parsed_runs': play.result.runs_scored}
        for play in plays
        if play.result.is_scoring_play and play.inning is not None and play.batting_side
    ]
    if not rows:
        return pd.DataFrame({
            'inning': pd.Series(dtype='int64'),
            'side': pd.Series(dtype='object'),
            'parsed_runs': pd.Series(dtype='int64'),
        })

    return pd.DataFrame(rows).groupby(['inning', 'side'], as_index=False)['parsed_runs'].sum()


def line_score_frame(line_score: ParsedLineScore) -> pd.DataFrame:
    """Official runs per (inning, side); innings without a number are left out"""
    rows = []
    for side, runs_by_inning in (('away', line_score.away_by_inning), ('home', line_score.home_by_inning)):
        for inning, runs in zip(line_score.innings, runs_by_inning):
            if runs is not None:
                rows.append({'inning': inning, 'side': side, 'runs': runs})
    return pd.DataFrame(rows, columns=['inning', 'side', 'runs'])


def compare_runs(official: pd.DataFrame, parsed: pd.DataFrame) -> Dict:
    """
    Compare official vs parsed runs per half inning

    Returns:
        Dict with half_innings_compared, total_differences and a differences list
        of {inning, side, official, parsed} records
    """
    if official.empty:
        return {'half_innings_compared': 0, 'total_differences': 0, 'differences': []}

    comparison = pd.merge(official, parsed, on=['inning', 'side'], how='left')
    comparison['parsed_runs'] = pd.to_numeric(comparison['parsed_runs'], errors='coerce').fillna(0).astype(int)
    comparison['runs_diff'] = comparison['parsed_runs'] - comparison['runs']

    mismatched = comparison[comparison['runs_diff'] != 0].sort_values(['inning', 'side'])
    differences = [
        {
            'inning': int(row['inning']),
            'side': row['side'],
            'official': int(row['runs']),
            'parsed': int(row['parsed_runs']),
        }
        for _, row in mismatched.iterrows()
    ]

    return {
        'half_innings_compared': len(comparison),
        'total_differences': int(comparison['runs_diff'].abs().sum()),
        'differences': differences,
    }


def validate_runs_by_inning(plays: Sequence, line_score: ParsedLineScore) -> List[str]:
    """
    Check scoring plays against the line score.

    Args:
        plays: Unified plays (anything with inning, batting_side and result)
        line_score: Parsed line score

    Returns:
        One warning string per half inning whose runs disagree
    """
    result = compare_runs(line_score_frame(line_score), runs_by_inning_frame(plays))
    return [
        f"Runs mismatch in inning {diff['inning']} ({diff['side']}): "
        f"line score {diff['official']}, plays {diff['parsed']}"
        for diff in result['differences']
    ]


def validate_batting_totals(batting: Sequence[BattingLine], totals: TotalsLine, side: str) -> List[str]:
    """Player batting lines summed against the line score R and H totals"""
    player_lines = [line for line in batting if not line.is_team_total]
    if not player_lines:
        return []

    frame = pd.DataFrame([{'r': line.r, 'h': line.h} for line in player_lines])
    warnings = []
    for column, official in (('r', totals.runs), ('h', totals.hits)):
        if official is None:
            continue
        parsed = int(pd.to_numeric(frame[column], errors='coerce').fillna(0).sum())
        if parsed != official:
            warnings.append(
                f"Box score {column.upper()} total mismatch ({side}): line score {official}, batting lines {parsed}"
            )
    return warnings
