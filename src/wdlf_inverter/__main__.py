import sys

from wdlf_inverter.cli.main import main

sys.exit(main())
