import sys

from cashflow.cli import main

sys.exit(main())
