"""Gemini chat relay service."""
