import sys

from gamerelay.cli import main

sys.exit(main())
