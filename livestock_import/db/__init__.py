"""Document store backends and batched jsonb writes."""
