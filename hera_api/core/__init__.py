"""Cross-cutting concerns: errors, logging, middleware, security."""
