"""
Task subsystem.

Components:
- task_models.py: the Task entity (Task, Priority, TaskValidationError)
- validation.py: validate_* / sanitize_* passes applied before tasks enter the state
"""
