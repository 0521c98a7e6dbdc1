import sys

from .main_script import main

sys.exit(main())
