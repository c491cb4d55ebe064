import sys

from redrive.handler.retry import main

sys.exit(main())
