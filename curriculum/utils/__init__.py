"""Small helpers used by blueprints."""
