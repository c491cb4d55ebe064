import sys

from redrive.handler.send import main

sys.exit(main())
