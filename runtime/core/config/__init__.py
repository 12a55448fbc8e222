"""Runtime configuration: YAML loading, schema validation and logging."""
