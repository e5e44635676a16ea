"""Core types shared by every layer: errors and protocol constants."""
