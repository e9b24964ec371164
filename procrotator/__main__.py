import sys

from procrotator.main import main

sys.exit(main())
