"""Confirm-before-apply tool calls for AI coach edits to a workout program."""
