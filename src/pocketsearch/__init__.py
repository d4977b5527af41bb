"""PocketSearch - offline semantic search over personal documents."""

__version__ = "0.1.0"
