"""Logging and metrics for infragraph."""
