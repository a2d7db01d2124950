"""Record Store boundary and its SQLAlchemy implementation."""
