"""HTTP layer: request schemas, dependency providers and routes."""
