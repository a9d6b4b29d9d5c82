"""smoke-run entry point.

Supports: python -m smoke_run
"""

from .app import main

if __name__ == "__main__":
    main()
