"""doorlog command-line interface."""
