import sys

from gitgrope.cli import main

if __name__ == "__main__":
    sys.exit(main())
