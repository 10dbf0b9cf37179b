import sys

from musicviz.runner import main

sys.exit(main())
