from __future__ import annotations

import sys
from pathlib import Path


def _ensure_repo_root_on_path() -> None:
    """Ensure the repository root (parent of this package) is on ``sys.path``.

    If this module is executed as a script (``python spice_theory/__main__.py``),
    the package may not be discoverable by Python.
    """
    pkg_dir = Path(__file__).resolve().parent
    repo_root_str = str(pkg_dir.parent)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


try:
    # Works when executed as a module: python -m spice_theory
    from .app import run  # type: ignore[attr-defined]
except ImportError:
    _ensure_repo_root_on_path()
    from spice_theory.app import run  # type: ignore[attr-defined]


def main() -> int:
    """Entry point for running the quiz from the command line."""
    return run()


if __name__ == "__main__":
    raise SystemExit(main())
