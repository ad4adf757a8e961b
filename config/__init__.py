"""Configuration package for the market data service."""
