"""Background jobs: scheduler, periodic tasks and health server."""
