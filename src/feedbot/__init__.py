"""
feedbot - Feed polling and notification fan-out for chat guilds.

This package polls RSS/Atom feeds on a timer, detects newly published items
and delivers them to every subscribed channel according to guild defaults
and per-subscription overrides.
"""

__version__ = "0.1.0"
