"""Daily standup tracking: submission windows, streaks, compliance and deliverables."""
