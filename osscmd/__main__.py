import sys

from osscmd.cli import main

sys.exit(main())
