"""Configuration: request and settings schemas, provider registry, YAML loader."""
