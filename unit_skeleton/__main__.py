"""Allow running as ``python -m unit_skeleton``."""

from unit_skeleton.cli import main

if __name__ == "__main__":
    main()
