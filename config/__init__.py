"""Environment-driven settings for the channel importer."""
