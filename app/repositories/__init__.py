"""Repositories for BetSettler."""

from app.repositories.bets import BetRepository

__all__ = ["BetRepository"]
