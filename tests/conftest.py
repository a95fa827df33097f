from __future__ import annotations

import sys
from pathlib import Path

# Allow `import facedet_kit` from a plain checkout without `pip install -e .`.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
