"""Typed batch records and the batch translation engine."""
