#!/usr/bin/env python3
"""Direct launcher for the Winner dashboard.

Runs Streamlit on ``winner_tracker/dashboard.py`` with the project root on
the import path.
"""

import sys
import subprocess
from pathlib import Path

project_root = Path(__file__).parent.resolve()
dashboard_path = project_root / "winner_tracker" / "dashboard.py"

if __name__ == "__main__":
    sys.path.insert(0, str(project_root))
    subprocess.run([
        sys.executable, "-m", "streamlit", "run",
        str(dashboard_path),
    ])
