"""Database Infrastructure — SQLAlchemy Base for the optional shared verification store."""
