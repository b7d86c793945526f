"""Small shared helpers: text truncation, latency logging, bounded gather."""
