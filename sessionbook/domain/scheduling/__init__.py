"""Scheduling domain: weekly schedules, slot generation and conflict detection."""
