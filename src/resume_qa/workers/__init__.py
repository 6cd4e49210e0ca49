"""Worker transports, request correlation and bundled service backends."""
