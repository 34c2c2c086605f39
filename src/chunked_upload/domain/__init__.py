"""Domain layer - upload sessions, chunks, artifacts and the services over them."""
