"""Sento Log backend."""
