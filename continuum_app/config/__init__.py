"""
Configuration module.

Default parameters, YAML/stored override loading and validation.
"""
