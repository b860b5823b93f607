"""
WebUntis timetable access.

This package contains:
- Entity model for the timetable entries payload
- Row resolution for position slots
- Async API client with login and session handling
- Error taxonomy shared with the watcher
"""

__version__ = "1.0.0"
