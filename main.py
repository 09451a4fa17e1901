"""Main entry point to running Telos from a checkout."""

from telos.cli import main

if __name__ == "__main__":
    main()
