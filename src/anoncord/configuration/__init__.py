"""
Configuration management for Anoncord.

- **app_configuration.py**: File-locked YAML loader for global settings:
  submission timeout, reject/release policies, moderator registry refresh,
  block list location and reload interval, extra classifier patterns. Falls
  back gracefully on missing or malformed config files.

- **relay_settings.py**: Typed accessor for the ``relay`` section (handle
  prefix, alphabet and length, moderator bypass).
"""
