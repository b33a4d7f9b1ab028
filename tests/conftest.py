"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

# Add tests to path for azure_mock and factories imports
tests_path = Path(__file__).parent
sys.path.insert(0, str(tests_path))


@pytest.fixture
def input_folder(tmp_path: Path) -> Path:
    """Empty plan output folder."""
    folder = tmp_path / "Output"
    folder.mkdir()
    return folder
