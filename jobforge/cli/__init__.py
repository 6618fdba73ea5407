"""Command-line interface for JobForge."""
