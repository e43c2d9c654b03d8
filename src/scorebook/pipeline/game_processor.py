"""
Final Game Processor
====================
Single entry point for turning a completed game into a scorekeeping
document, with optional CSV export.

Usage:
    scorebook-final --id 636528
    scorebook-final --id 636528 --csv data/reports --output game.json
"""

import argparse
import json
import logging
import sys
import time
from datetime import datetime
from typing import Any, Dict, List, Optional

from scorebook.config import get_source_settings
from scorebook.errors import ScorebookError
from scorebook.pipeline.export import save_csv_reports
from scorebook.pipeline.game_source import StatsSource
from scorebook.pipeline.scorekeeping import build_scorekeeping_data

# Create logger at module level (prevents duplicate handlers)
module_logger = logging.getLogger(__name__)


def process_final_game(
    game_id: int,
    source: StatsSource,
    export_dir: Optional[str] = None,
    logger: Optional[logging.Logger] = None,
) -> Dict[str, Any]:
    """
    Fetch, unify and optionally export one final game.

    Args:
        game_id: Provider game id
        source: Where game bundles come from
        export_dir: Write CSV reports here when given
        logger: Optional logger instance (module logger if None)

    Returns:
        Dict with processing_status ('success' or 'error'), timing, the
        scorekeeping document under 'data', and 'csv_files' when exported
    """
    if logger is None:
        logger = module_logger

    start_time = time.time()
    logger.info(f"Processing final game {game_id}")

    try:
        final_game = source.get_final_game(game_id)
        data = build_scorekeeping_data(final_game)

        csv_files = save_csv_reports(data, export_dir) if export_dir else None

        processing_time = time.time() - start_time
        status_icon = "✅" if not data['warnings'] else "⚠️"
        logger.info(
            f"{game_id} | {status_icon} {len(data['plays'])} plays | "
            f"{len(data['warnings'])} warnings | {processing_time:.1f}s"
        )

        return {
            "game_id": game_id,
            "timestamp": datetime.now().isoformat(),
            "processing_time": processing_time,
            "processing_status": "success",
            "game_status": final_game.status,
            "data": data,
            "csv_files": csv_files,
        }

    except ScorebookError as e:
        processing_time = time.time() - start_time
        logger.error(f"Processing failed for game {game_id}: {e}")

        return {
            "game_id": game_id,
            "timestamp": datetime.now().isoformat(),
            "processing_time": processing_time,
            "processing_status": "error",
            "error_message": str(e),
        }


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Build the scorekeeping document for a final game'
    )
    parser.add_argument(
        '--id',
        type=int,
        required=True,
        dest='game_id',
        help='Provider game id'
    )
    parser.add_argument(
        '--csv',
        default=None,
        help='Directory to write CSV reports into'
    )
    parser.add_argument(
        '--output',
        default=None,
        help='Write the JSON document to this file instead of stdout'
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Command line entry point"""
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        logging.basicConfig(
            level=logging.INFO,
            format='%(asctime)s - %(levelname)s - %(message)s'
        )

    args = build_parser().parse_args(argv)
    source = StatsSource.from_settings(get_source_settings())
    result = process_final_game(args.game_id, source, export_dir=args.csv)

    if result["processing_status"] != "success":
        return 1

    document = json.dumps(result["data"], indent=2, default=str)
    if args.output:
        with open(args.output, 'w', encoding='utf-8') as f:
            f.write(document)
        module_logger.info(f"📄 Scorekeeping JSON saved: {args.output}")
    else:
        print(document)

    return 0


if __name__ == "__main__":
    sys.exit(main())
