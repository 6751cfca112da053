"""Core primitives shared by all managers."""
