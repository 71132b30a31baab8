import sys

from chatload.cli import main

sys.exit(main())
