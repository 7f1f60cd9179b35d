"""toolkit-exec 入口点。

支持: python -m toolkit_exec PROGRAM [ARGS...]
"""

from .app import main

if __name__ == "__main__":
    main()
