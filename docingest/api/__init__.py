"""HTTP API layer: routes, schemas and middleware."""
