"""Error taxonomy for the settlement pipeline."""


class BetSettlerError(Exception):
    """Base class for settlement pipeline errors."""

    pass


class DeliveryError(BetSettlerError):
    """Raised when a broker rejects or times out a publish."""

    def __init__(self, message: str, topic: str | None = None, key: str | None = None):
        super().__init__(message)
        self.topic = topic
        self.key = key


class MatchingError(BetSettlerError):
    """Raised when pending bets for an outcome cannot be read."""

    def __init__(self, message: str, event_id: str):
        super().__init__(message)
        self.event_id = event_id


class BetNotFoundError(BetSettlerError):
    """Raised when a settlement references a bet that does not exist."""

    def __init__(self, bet_id: int):
        super().__init__(f"Bet not found: {bet_id}")
        self.bet_id = bet_id
