"""Request/response middleware: logging, timing, rate limits."""
