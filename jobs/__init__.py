"""Background jobs: dramatiq broker, actors and scheduler."""
