"""Settlement services."""

from app.services.matching import BetMatcher
from app.services.settlement import Settler

__all__ = ["BetMatcher", "Settler"]
