"""Core library for capturing UI strings and batch-translating them."""
