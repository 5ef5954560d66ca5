import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

import pytest
import torch


@pytest.fixture(autouse=True)
def seed():
    torch.manual_seed(0)
