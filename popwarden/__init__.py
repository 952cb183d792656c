"""
popwarden - Intrusive popup blocking that learns.

popwarden provides:
- A 100-point confidence rubric for candidate popup elements
- An adaptive pattern store that generalizes user close/keep decisions
- A decision coordinator that tracks many outstanding decisions with
  reminders, timeouts and restart-safe persistence
"""

__version__ = "0.3.2"
