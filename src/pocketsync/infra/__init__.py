"""Storage and transport implementations."""
