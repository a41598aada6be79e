"""Configuration — options file and step file loaders."""
