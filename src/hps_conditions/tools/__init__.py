"""Command line helpers for loading conditions data."""
