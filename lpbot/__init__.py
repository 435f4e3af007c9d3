"""
Core of the LP bot.

- sessions.py: per-user single-sided LP setup sessions (one per user)
- position_index.py: 1-based ordinals over the last positions listing
- workflow.py: setup state machine and the driver that runs its effects
- lifecycle.py: open / close / harvest against the AMM execution service
"""
