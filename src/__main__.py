import sys

from src.cli import main

sys.exit(main())
