"""Translation between UCI text lines and structured events.

Nothing in here touches a process: encoders build newline-terminated command
lines, ``decode_line`` turns one engine output line into an event, and
``LineBuffer`` reassembles lines from arbitrary stdout chunks.
"""

from __future__ import annotations

import codecs
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union


@dataclass(frozen=True)
class Mate:
    """Mate score from the side to move's point of view.

    Positive ``moves`` means the side to move mates in N, negative means it
    is mated in ``abs(moves)``.
    """

    moves: int

    @property
    def mated(self) -> bool:
        return self.moves < 0

    def __str__(self) -> str:
        return f"#{self.moves}" if self.moves >= 0 else f"#-{abs(self.moves)}"


Score = Union[float, Mate]


@dataclass(frozen=True)
class ReadyEvent:
    token: str


@dataclass(frozen=True)
class InfoEvent:
    depth: Optional[int] = None
    score: Optional[Score] = None
    variation_index: Optional[int] = None
    pv: Tuple[str, ...] = ()
    text: Optional[str] = None

    @property
    def move(self) -> Optional[str]:
        return self.pv[0] if self.pv else None


@dataclass(frozen=True)
class BestMoveEvent:
    move: Optional[str]
    ponder: Optional[str] = None


@dataclass(frozen=True)
class Unrecognized:
    line: str


Event = Union[ReadyEvent, InfoEvent, BestMoveEvent, Unrecognized]

READY_TOKENS = ("readyok", "uciok")


def encode_uci() -> str:
    return "uci\n"


def encode_isready() -> str:
    return "isready\n"


def encode_set_option(name: str, value) -> str:
    return f"setoption name {name} value {value}\n"


def encode_set_multipv(count: int) -> str:
    return encode_set_option("MultiPV", int(count))


def encode_new_game() -> str:
    return "ucinewgame\n"


def encode_position(fen: str) -> str:
    return f"position fen {fen.strip()}\n"


def encode_go(depth: Optional[int] = None, movetime_ms: Optional[int] = None) -> str:
    parts = ["go"]
    if depth is not None:
        parts.append(f"depth {int(depth)}")
    if movetime_ms is not None:
        parts.append(f"movetime {int(movetime_ms)}")
    return " ".join(parts) + "\n"


def encode_stop() -> str:
    return "stop\n"


def encode_quit() -> str:
    return "quit\n"


def _parse_info(tokens: List[str]) -> InfoEvent:
    depth: Optional[int] = None
    score: Optional[Score] = None
    variation_index: Optional[int] = None
    pv: Tuple[str, ...] = ()
    text: Optional[str] = None

    iterator = iter(tokens[1:])
    for token in iterator:
        if token == "depth":
            try:
                depth = int(next(iterator))
            except (StopIteration, ValueError):
                continue
        elif token == "multipv":
            try:
                variation_index = int(next(iterator))
            except (StopIteration, ValueError):
                continue
        elif token == "score":
            kind = next(iterator, "")
            try:
                value = int(next(iterator, ""))
            except ValueError:
                continue
            if kind == "cp":
                score = value / 100
            elif kind == "mate":
                score = Mate(value)
        elif token == "pv":
            pv = tuple(iterator)
            break
        elif token == "string":
            text = " ".join(iterator)
            break

    return InfoEvent(
        depth=depth,
        score=score,
        variation_index=variation_index,
        pv=pv,
        text=text,
    )


def decode_line(line: str) -> Event:
    tokens = line.split()
    if not tokens:
        return Unrecognized(line)

    head = tokens[0]
    if head in READY_TOKENS and len(tokens) == 1:
        return ReadyEvent(head)
    if head == "bestmove":
        move = tokens[1] if len(tokens) > 1 else None
        if move in ("(none)", "0000"):
            move = None
        ponder = None
        if len(tokens) > 3 and tokens[2] == "ponder":
            ponder = tokens[3]
        return BestMoveEvent(move=move, ponder=ponder)
    if head == "info":
        return _parse_info(tokens)
    return Unrecognized(line)


class LineBuffer:
    """Reassembles complete lines from stdout chunks.

    A trailing partial line is held back until a later chunk completes it.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._pending = ""

    @property
    def pending(self) -> str:
        return self._pending

    def feed(self, chunk: Union[str, bytes]) -> List[str]:
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        data = self._pending + chunk
        pieces = data.split("\n")
        self._pending = pieces.pop()
        return [piece.strip() for piece in pieces if piece.strip()]

    def flush(self) -> List[str]:
        tail = self._pending + self._decoder.decode(b"", final=True)
        self._pending = ""
        tail = tail.strip()
        return [tail] if tail else []

    def decode_chunk(self, chunk: Union[str, bytes]) -> List[Event]:
        return [decode_line(line) for line in self.feed(chunk)]
