"""Jobs periódicos da cascata."""
