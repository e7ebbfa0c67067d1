"""Route modules for the StyleRec API."""
