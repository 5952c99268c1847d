import sys

from .tasks.promo_code_backfill import main


if __name__ == "__main__":
    sys.exit(main())
