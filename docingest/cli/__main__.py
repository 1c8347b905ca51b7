"""Allow ``python -m docingest.cli`` execution."""

import sys

from docingest.cli.files import main

sys.exit(main())
