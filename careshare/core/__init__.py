"""Request-scoped dependencies and service wiring."""
