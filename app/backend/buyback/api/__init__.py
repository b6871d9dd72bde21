"""HTTP API: schemas, dependencies, middleware and routes."""
