"""cli-wrap entry point.

Supports: python -m cli_wrap
"""

from .app import main

if __name__ == "__main__":
    main()
