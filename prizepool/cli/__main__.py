import sys

from prizepool.cli import main

sys.exit(main())
