"""Command-line entry points (``python -m docingest.cli``)."""
