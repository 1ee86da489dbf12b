"""Opportunity catalog."""

from .catalog import OpportunityCatalog

__all__ = ["OpportunityCatalog"]
