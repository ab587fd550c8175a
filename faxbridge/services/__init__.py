"""Domain services: delivery, storage, context recovery, document building and audit."""
