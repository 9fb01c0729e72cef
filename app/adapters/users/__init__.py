"""User storage adapters.

Services depend on ``AbstractUserRepository`` so the in-memory store can be
replaced by a database-backed one without touching routes or services.
"""
