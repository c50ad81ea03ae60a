"""Domain interfaces."""
