import sys

from balloony.app import main

sys.exit(main())
