import sys

from paste_upload.cli import main

sys.exit(main())
