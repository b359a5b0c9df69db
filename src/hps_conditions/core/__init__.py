"""Conditions cache, schema, converters and database access."""
