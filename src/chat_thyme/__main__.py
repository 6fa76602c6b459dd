import sys

from chat_thyme.cli import main

sys.exit(main())
