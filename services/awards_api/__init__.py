"""HTTP API for the awards voting service."""
