import sys

from watchahead.main import main

sys.exit(main())
