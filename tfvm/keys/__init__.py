"""Pinned release signing keys shipped as package data."""
