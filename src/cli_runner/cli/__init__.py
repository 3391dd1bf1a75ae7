"""Command line interface for cli-runner."""
