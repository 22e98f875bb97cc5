"""
Configuration management for Courtside.

- **app_configuration.py**: YAML configuration loader (``config/app_config.yml``)
  exposing typed accessors for the tier sync schedule and tier table, the
  onboarding reminder settings, message templates and runtime timeouts. Falls
  back to defaults on missing or malformed files.
"""
