"""Configuration-driven admin data access: models, KV lists and form widgets."""

__version__ = "1.0.0"
