"""Lexia contestación drafting backend."""
