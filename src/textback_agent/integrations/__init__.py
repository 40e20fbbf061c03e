"""External collaborators: calendar and SMS gateway."""
