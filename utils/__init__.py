"""CLI helpers: output rendering and input validation."""
