"""Attendance session services."""
