from app.workers.tasks.push_notifications import deliver_push_notification

__all__ = [
    "deliver_push_notification",
]
