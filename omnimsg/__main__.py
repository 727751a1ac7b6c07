import sys

from .channel.interactive import main

sys.exit(main())
