"""
Nudge subsystem.

Components:
- engine.py: escalation policy (level, tone, suppression, message choice)
- templates.py: per-locale, per-tone message pools
- behavior_store.py: SQLite record of interactions and unanswered nudges
"""
