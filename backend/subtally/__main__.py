import sys

from subtally.main import main

sys.exit(main())
