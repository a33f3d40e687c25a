"""Command-line interface for tls-reconciler."""
