# Notifications package for notifier publishing

from .dispatcher import NotificationDispatcher, build_notification

__all__ = ['NotificationDispatcher', 'build_notification']
