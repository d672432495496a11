"""Random puzzle lookup from the SQLite puzzle store."""

import sqlite3
from pathlib import Path
from typing import Any, Dict, Optional, Union

from . import config

RANDOM_PUZZLE_QUERY = "SELECT * FROM puzzles ORDER BY RANDOM() LIMIT 1"


def random_puzzle(db_path: Union[str, Path, None] = None) -> Optional[Dict[str, Any]]:
    path = Path(db_path) if db_path else config.PUZZLE_DB_PATH
    if not path.exists():
        raise FileNotFoundError(f"Puzzle database not found: {path}")
    connection = sqlite3.connect(str(path))
    try:
        connection.row_factory = sqlite3.Row
        row = connection.execute(RANDOM_PUZZLE_QUERY).fetchone()
    finally:
        connection.close()
    return dict(row) if row is not None else None
