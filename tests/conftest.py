import os
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Provide default environment variables for settings
os.environ.setdefault("GEMINI_API_KEY", "test")
os.environ.setdefault("LOCAL_ANALYZER", "keyword")

from commentlens.config import Settings  # noqa: E402


@pytest.fixture
def settings() -> Settings:
    return Settings(
        gemini_api_key="test",
        max_retries=3,
        request_timeout_seconds=5.0,
        local_analyzer="keyword",
    )
