import sys

from wifi_transfer.cli import main

sys.exit(main())
