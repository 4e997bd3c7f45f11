"""CLI module for symbiosis."""
