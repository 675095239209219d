"""Lexia services."""
