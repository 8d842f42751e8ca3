"""
Convenience entry point for running slotengine directly.

Usage: python -m slotengine [command] [options]
"""

from .cli.app import app

if __name__ == "__main__":
    app()
