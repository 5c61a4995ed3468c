"""Domain services used by the scheduler handlers."""
