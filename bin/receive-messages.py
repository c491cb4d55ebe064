import sys

from redrive.handler.receive import main

sys.exit(main())
