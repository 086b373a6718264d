"""Live Command Runner 入口点。

支持: python -m live_cmd_runner
"""

import multiprocessing

from .app import main

if __name__ == "__main__":
    multiprocessing.freeze_support()
    main()
