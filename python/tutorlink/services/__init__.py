"""Service layer. Routes call exactly one service function."""
