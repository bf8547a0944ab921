"""Guardian command-line interface."""
