"""Process-wide setup shared by the CLI and library callers."""
