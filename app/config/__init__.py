"""Configuration: settings, business constants and reward policy."""
