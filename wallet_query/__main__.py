import sys

from wallet_query.cli import main


if __name__ == "__main__":
    sys.exit(main())
