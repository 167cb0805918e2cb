"""Configuration loading: provision.yml → ProvisionConfig."""
