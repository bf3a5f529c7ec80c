import sys

from dataload.cli import main

sys.exit(main())
