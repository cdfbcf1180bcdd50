"""
game_loader.py
Look up supported games from the Games/ catalogue.

Usage:
    from Utils.game_loader import discover_games, get_game
    games = discover_games()          # {game.game_id: Game}
    fo76 = get_game("fallout76")
"""

from Games.base_game import Game
from Games.bethesda import SUPPORTED_GAMES
from Utils.errors import GameNotFoundError

DEFAULT_GAME_ID = "fallout76"


def discover_games() -> dict[str, Game]:
    """Return every supported game keyed by game_id, in catalogue order."""
    return {g.game_id: g for g in SUPPORTED_GAMES}


def get_game(game_id: str) -> Game:
    """Return the game with *game_id* or raise GameNotFoundError."""
    game = discover_games().get(game_id)
    if game is None:
        raise GameNotFoundError(f"game not found: {game_id}")
    return game


def get_game_by_nexus_domain(domain: str) -> Game:
    """Return the game whose Nexus domain is *domain* (case-insensitive)."""
    domain = domain.lower()
    for game in SUPPORTED_GAMES:
        if game.nexus_domain == domain:
            return game
    raise GameNotFoundError(f"game not found for nexus domain: {domain}")
