"""Relay and command line client for Gemini image and Veo video generation."""

__version__ = "0.3.0"
