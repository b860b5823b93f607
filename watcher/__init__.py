"""
Timetable watcher: lesson projection, change detection and notifications.

This package contains:
- Lesson projection from timetable grid entries
- Change detection engine
- Poll cycle controller with baseline handling
- Webhook alerting
- APScheduler based watcher service
"""

__version__ = "1.0.0"
