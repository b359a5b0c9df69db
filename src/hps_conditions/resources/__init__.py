"""Embedded configuration documents and connection properties."""
