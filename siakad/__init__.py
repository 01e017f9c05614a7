"""
SIAKAD Sync - client core for the student academic portal.

Keeps locally created tasks and messages reconciled with the SIAKAD REST
API, tracks per-course attendance with daily reminders, and exposes the
aggregated state to a UI or the ``siakad`` command line.
"""

__version__ = "1.0.0"
