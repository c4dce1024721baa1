"""
Adds the repository root to the search path so the Pulumi program can
import `modules` and `utils` without installing the repo.

In GH CI we set `PYTHONPATH` env var to the workspace root
which is equivalent to what we are doing here.
"""

from pathlib import Path
import sys
import os

if os.environ.get("CI") != "true":
    path_root = Path(__file__).parents[1]
    if str(path_root) not in sys.path:
        sys.path.append(str(path_root))
