"""pointboard: team task board with a points ledger and leaderboard."""

__version__ = "1.0.0"
