"""SynthLabs: reasoning-data generation engine for LLM providers."""

__version__ = "0.1.0"
