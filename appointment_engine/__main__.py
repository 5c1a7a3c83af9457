"""
Entry point for ``python -m appointment_engine``.
"""

from .cli.app import app

if __name__ == "__main__":
    app()
