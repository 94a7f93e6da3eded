"""
Race error taxonomy.

Every rejection a Race operation can produce is one of these. They are
raised before any state is touched, so the race stays usable afterwards.
"""


class RaceError(Exception):
    """Base class for rejected race operations."""

    message = "Race operation rejected"

    def __init__(self, message: str = None):
        super().__init__(message or self.message)

    @property
    def client_message(self) -> str:
        """Text sent back to the originating connection."""
        return str(self)


# Capacity

class GameFull(RaceError):
    message = "Game is full"


# Phase violations

class RaceInProgress(RaceError):
    message = "Game already in progress"


class NotRunning(RaceError):
    message = "Race not running"


# Identity

class UnknownAttacker(RaceError):
    message = "Attacker not found"


class UnknownTarget(RaceError):
    message = "Target not found"


# Rule violations

class SelfTarget(RaceError):
    message = "Cannot impede yourself"


class ImpedeBudgetExhausted(RaceError):
    message = "No impedes remaining"


class TargetAlreadyFinished(RaceError):
    message = "Target already finished"
