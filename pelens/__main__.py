"""
PeLens Module Entry Point
==========================

Allows running the CLI via: python -m pelens
"""

from pelens.cli import main

if __name__ == "__main__":
    main()
