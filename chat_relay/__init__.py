"""Live-chat webhook relay with retrieval-augmented responses."""
