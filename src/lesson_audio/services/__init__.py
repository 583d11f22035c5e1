"""Service layer for lesson generation and paragraph audio."""
