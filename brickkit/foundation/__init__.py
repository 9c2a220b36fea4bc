"""Dependency-light helpers shared by the runtime (config files, logging)."""
