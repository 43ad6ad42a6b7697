"""Core building blocks: errors, schema, generators, registry, configuration."""
