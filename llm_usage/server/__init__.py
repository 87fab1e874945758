"""Local HTTP server for the web dashboard."""
