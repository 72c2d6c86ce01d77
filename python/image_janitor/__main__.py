import sys

from image_janitor.main import main

sys.exit(main())
