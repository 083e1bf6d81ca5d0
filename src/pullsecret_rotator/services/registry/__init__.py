"""Registry token endpoint client."""
