"""Game domain services: cards, the rule engine, sessions and reveal timers.

``cards`` and ``engine`` are pure and free of Flask; ``sessions`` and
``scheduler`` bind them to the database and Socket.IO for the HTTP routes.
"""
