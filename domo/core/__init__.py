"""Core module for Domo configuration, errors and error tracking."""
