import os
import sys

# Make the repo root importable when running pytest from a checkout without
# `pip install -e .`.
ROOT = os.path.dirname(os.path.abspath(__file__))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
