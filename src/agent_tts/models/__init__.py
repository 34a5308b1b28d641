"""Data models: SQLAlchemy tables and transient parsed messages."""
