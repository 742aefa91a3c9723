"""Room domain services: scoring and room mutations.

This package contains the domain logic imported by HTTP routes and by the
client core, keeping transport concerns separated from ballot rules.
"""
