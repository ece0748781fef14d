"""Pure domain value objects: clock, fiscal year, rounding, workflow types."""
