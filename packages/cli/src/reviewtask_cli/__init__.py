"""Command-line interface for reviewtask."""
