"""Clinical domain models and error taxonomy."""
