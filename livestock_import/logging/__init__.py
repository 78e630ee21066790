"""Console logging and the structured JSON Lines error log."""
