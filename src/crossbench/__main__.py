import sys

from crossbench.cli import main

sys.exit(main())
