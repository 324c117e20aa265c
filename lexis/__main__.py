import sys

from lexis.cli import main

sys.exit(main())
