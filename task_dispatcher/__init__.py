"""Recurring task dispatcher: schedules, dispatch and invocation of task units."""
