"""Exception types raised by the analysis core."""


class AnalysisError(Exception):
    """Base class for every failure surfaced by the analysis core."""


class SpawnFailure(AnalysisError):
    """The engine executable is missing or could not be launched."""


class ProtocolDesync(AnalysisError):
    """An expected engine response never arrived within its window."""


class InvalidInput(AnalysisError):
    """Malformed FEN or PGN, rejected before the engine is touched."""


class QueueTaskFailure(AnalysisError):
    """An unexpected exception escaped a queued analysis task."""


class QueueClosed(AnalysisError):
    pass


class EngineBusy(AnalysisError):
    """A second analysis tried to claim the engine while one is in flight."""
