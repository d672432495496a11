import io
from dataclasses import dataclass, field
from typing import Dict, Iterator, List

import chess
import chess.pgn

from .errors import InvalidInput


@dataclass
class ParsedGame:
    """Move list and metadata extracted from one PGN game."""

    start_board: chess.Board
    moves: List[chess.Move]
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def result(self) -> str:
        return self.headers.get("Result", "*")

    def final_board(self) -> chess.Board:
        board = self.start_board.copy(stack=False)
        for move in self.moves:
            board.push(move)
        return board


def validate_fen(fen: str) -> str:
    """Return the normalised FEN or raise :class:`InvalidInput`."""
    if not isinstance(fen, str) or not fen.strip():
        raise InvalidInput("FEN string is empty")
    try:
        board = chess.Board(fen.strip())
    except ValueError as exc:
        raise InvalidInput(f"Invalid FEN: {exc}") from exc
    status = board.status()
    if status != chess.STATUS_VALID:
        raise InvalidInput(f"Invalid FEN: position is not legal ({status!r})")
    return board.fen()


def parse_pgn(text: str) -> ParsedGame:
    if not isinstance(text, str) or not text.strip():
        raise InvalidInput("PGN text is empty")
    try:
        game = chess.pgn.read_game(io.StringIO(text))
    except ValueError as exc:
        raise InvalidInput(f"Error loading PGN: {exc}") from exc
    if game is None:
        raise InvalidInput("PGN contains no game")

    moves = list(game.mainline_moves())
    if game.errors:
        raise InvalidInput(f"Error loading PGN: {game.errors[0]}")
    if not moves:
        raise InvalidInput("PGN contains no moves")

    return ParsedGame(
        start_board=game.board(),
        moves=moves,
        headers=dict(game.headers),
    )


def side_to_move(board: chess.Board) -> str:
    return "white" if board.turn == chess.WHITE else "black"


@dataclass(frozen=True)
class ReplayedPly:
    ply: int
    move_number: int
    mover: str
    move: chess.Move
    san: str
    fen: str


def replay(game: ParsedGame, limit: int) -> Iterator[ReplayedPly]:
    """Apply the first ``limit`` moves of ``game`` from its start position."""
    board = game.start_board.copy(stack=False)
    for index, move in enumerate(game.moves[:limit]):
        mover = side_to_move(board)
        move_number = board.fullmove_number
        san = board.san(move)
        board.push(move)
        yield ReplayedPly(
            ply=index + 1,
            move_number=move_number,
            mover=mover,
            move=move,
            san=san,
            fen=board.fen(),
        )


def get_game_result(board: chess.Board) -> str:
    if board.is_checkmate():
        return "Checkmate"
    elif board.is_stalemate():
        return "Stalemate"
    elif board.is_insufficient_material():
        return "Insufficient Material"
    elif board.is_seventyfive_moves():
        return "75-move rule"
    elif board.is_fivefold_repetition():
        return "Fivefold Repetition"
    elif board.is_variant_draw():
        return "Variant-specific Draw"
    else:
        return "Game in progress"

