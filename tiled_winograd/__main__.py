import sys

from tiled_winograd.cli import main

sys.exit(main())
