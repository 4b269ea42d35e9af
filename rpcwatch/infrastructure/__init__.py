"""Infrastructure layer for rpcwatch."""
