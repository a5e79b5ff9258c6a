"""Core: diagnostic parsing, file resolution, markers and the status tree."""
