# gotmpls/__main__.py
"""``python -m gotmpls``; see :mod:`gotmpls.main`."""

from gotmpls.main import main

if __name__ == "__main__":
    raise SystemExit(main())
