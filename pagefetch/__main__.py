import sys

from pagefetch.main import main

sys.exit(main())
