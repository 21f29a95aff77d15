import sys

from btblocklist.service import main

sys.exit(main())
