"""Allow ``python -m devalias_cli``"""

import sys

from .main import main

sys.exit(main())
