"""
Task subsystem.

Components:
- task_models.py: data structures (ScheduledTask, typed payloads, CycleReport)
- task_store.py: SQLite-backed storage + lease operations
- retry_policy.py: what happens to a task after a failed run
- task_handlers.py: one handler per task type
- task_scheduler.py: dispatcher that runs ready tasks, plus a polling loop
- task_api.py: management helpers (enable/disable/list per owner)
"""
