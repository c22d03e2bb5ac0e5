"""Allow running the package as a module: python -m lending_exposure"""

import sys

from lending_exposure.cli import main

if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
