"""Service layer between the HTTP blueprints and storage."""
