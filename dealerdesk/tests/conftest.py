from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[2]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

_TEST_ROOT = Path(tempfile.mkdtemp(prefix="dealerdesk-tests-"))
os.environ.setdefault("DEALERDESK_DATA_DIR", str(_TEST_ROOT / "data"))
os.environ.setdefault("DEALERDESK_MEDIA_DIR", str(_TEST_ROOT / "media"))
os.environ.setdefault("PDF_RENDERER", "reportlab")
os.environ.setdefault("STORAGE_BACKEND", "local")
