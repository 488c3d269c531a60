"""
Approval Kernel

The multi-level approval workflow engine ("FSM") for back-office records:
- Level graph resolution of machine definitions
- Role/user based permission checks per level
- Append-only approval log with conditional appends
- Status projection derived from the log, never stored
- Post-transition hook with a redelivery outbox
"""

__version__ = "0.1.0"
