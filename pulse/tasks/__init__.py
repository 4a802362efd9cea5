"""
Celery tasks package.

Tasks are organized by domain:
- email_tasks: Password-reset and email-verification delivery
- maintenance_tasks: Session purge and single-use token cleanup
"""

from pulse.tasks import email_tasks, maintenance_tasks

__all__ = ["email_tasks", "maintenance_tasks"]
