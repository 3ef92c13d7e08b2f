"""
leakcheck/__main__.py
=====================

Allows ``python -m leakcheck PATH [PATH...]``; see :mod:`leakcheck.main`
for the options.
"""

from leakcheck.main import main

if __name__ == "__main__":
    raise SystemExit(main())
