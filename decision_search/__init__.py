"""Decision search with a persistent, TTL-based result cache."""

__version__ = "1.0.0"
