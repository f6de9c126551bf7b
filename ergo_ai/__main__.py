import sys

from ergo_ai.cli import main

sys.exit(main())
