"""Root conftest.py: make the local tapkit source take priority over an installed copy."""
import os
import sys

# Insert the repository root at the beginning of sys.path so that the local
# tapkit/ package wins over any installed distribution of it.
_repo_root = os.path.dirname(os.path.abspath(__file__))
if _repo_root not in sys.path:
    sys.path.insert(0, _repo_root)
