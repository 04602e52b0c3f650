"""
CLI module entry point.

This allows the CLI to be run as:
python -m couch_backup
"""

from couch_backup.cli.main import main

if __name__ == "__main__":
    main()
