import os
import sys
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

# Keep tests off the real data directory.
os.environ.setdefault("DAILY_FORGE_DATA_DIR", str(PROJECT_ROOT / ".pytest_data"))
