"""Core models, errors and eligibility rules."""
