"""Game domain services: scoring, role rotation, rooms, rounds, matchmaking.

This package contains the game rules and persistence logic that HTTP routes
and socket handlers call into, keeping transport concerns separated from
core game mechanics.
"""
