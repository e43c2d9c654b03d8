"""
Player ID Resolution
====================
Resolves every mention of a player (box score, lineup, play text) to one id.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

import pandas as pd

from scorebook.parsing.parsing_utils import normalize_name_key, normalize_player_display_name, slug_for_id


@dataclass
class Player:
    player_id: str
    name: str
    normalized_name: str
    sides: List[str] = field(default_factory=list)
    jersey_numbers: List[int] = field(default_factory=list)
    positions: List[str] = field(default_factory=list)


class PlayerRegistry:
    """
    Append-only player index keyed by (side, normalized name).

    Registering a known (side, name) returns the existing id and merges in any
    new jersey number or position. There is no removal.
    """

    def __init__(self):
        self._players: Dict[str, Player] = {}
        self._ids_by_side_and_name: Dict[str, str] = {}

    def register(self, side: str, name: str, jersey: Optional[int] = None,
                 position: Optional[str] = None) -> str:
        display_name = normalize_player_display_name(name) or name
        normalized_name = normalize_name_key(name)
        key = f"{side}|{normalized_name}"

        existing_id = self._ids_by_side_and_name.get(key)
        if existing_id is not None:
            player = self._players[existing_id]
            if jersey is not None and jersey not in player.jersey_numbers:
                player.jersey_numbers.append(jersey)
            if position and position not in player.positions:
                player.positions.append(position)
            if side not in player.sides:
                player.sides.append(side)
            return existing_id

        jersey_part = 'na' if jersey is None else str(jersey)
        player_id = self._unique_id(f"{side}:{jersey_part}:{slug_for_id(display_name)}")
        self._players[player_id] = Player(
            player_id=player_id,
            name=display_name,
            normalized_name=normalized_name,
            sides=[side],
            jersey_numbers=[] if jersey is None else [jersey],
            positions=[position] if position else [],
        )
        self._ids_by_side_and_name[key] = player_id
        return player_id

    def lookup(self, side: str, name: Optional[str]) -> Optional[str]:
        if not name:
            return None
        return self._ids_by_side_and_name.get(f"{side}|{normalize_name_key(name)}")

    def to_record(self) -> Dict[str, Player]:
        return dict(self._players)

    def __len__(self) -> int:
        return len(self._players)

    def _unique_id(self, base_id: str) -> str:
        if base_id not in self._players:
            return base_id
        index = 2
        while f"{base_id}:{index}" in self._players:
            index += 1
        return f"{base_id}:{index}"


def player_id_frame(players: Iterable[Player]) -> pd.DataFrame:
    """
    Flatten players (registry values or document records) to one row per player

    Returns:
        DataFrame with player_id, player_name, normalized_name, sides,
        jersey_numbers and positions columns
    """
    rows = [
        {
            'player_id': player.player_id,
            'player_name': player.name,
            'normalized_name': player.normalized_name,
            'sides': ','.join(player.sides),
            'jersey_numbers': ','.join(str(number) for number in player.jersey_numbers),
            'positions': ','.join(player.positions),
        }
        for player in players
    ]
    return pd.DataFrame(rows, columns=[
        'player_id', 'player_name', 'normalized_name', 'sides', 'jersey_numbers', 'positions',
    ])
