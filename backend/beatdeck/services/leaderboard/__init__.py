"""Leaderboard domain services: score records, ranking and the store."""
