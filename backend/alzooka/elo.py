"""ELO ratings for trivia challenges."""

from __future__ import annotations

import math
from dataclasses import dataclass


K_FACTOR = 32
RATING_FLOOR = 100
DEFAULT_RATING = 1200


@dataclass(frozen=True)
class MatchRatings:
    player1_new_rating: int
    player2_new_rating: int
    player1_change: int
    player2_change: int


def expected_score(player_rating: float, opponent_rating: float) -> float:
    return 1 / (1 + 10 ** ((opponent_rating - player_rating) / 400))


def calculate_new_rating(player_rating: float, opponent_rating: float, actual_score: float) -> int:
    """``actual_score`` is 1 for a win, 0.5 for a draw and 0 for a loss."""
    expected = expected_score(player_rating, opponent_rating)
    new_rating = player_rating + K_FACTOR * (actual_score - expected)
    # Round half up.
    return max(RATING_FLOOR, math.floor(new_rating + 0.5))


def calculate_match_ratings(player1_rating: int, player2_rating: int, player1_won: bool) -> MatchRatings:
    player1_score = 1 if player1_won else 0
    player2_score = 0 if player1_won else 1

    player1_new = calculate_new_rating(player1_rating, player2_rating, player1_score)
    player2_new = calculate_new_rating(player2_rating, player1_rating, player2_score)
    return MatchRatings(
        player1_new_rating=player1_new,
        player2_new_rating=player2_new,
        player1_change=player1_new - player1_rating,
        player2_change=player2_new - player2_rating,
    )


def rating_change_description(change: int) -> str:
    if change > 25:
        return "Huge upset!"
    if change > 15:
        return "Great win!"
    if change > 0:
        return "Nice win"
    if change == 0:
        return "No change"
    if change > -15:
        return "Tough loss"
    if change > -25:
        return "Bad loss"
    return "Devastating loss"
