"""SQLAlchemy persistence for the document store."""
