"""Donor journey analysis: journey graphs, per-donor stage and action analysis, to-do reconciliation."""

__version__ = "0.1.0"
