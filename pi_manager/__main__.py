import sys

from pi_manager.main import main

sys.exit(main())
