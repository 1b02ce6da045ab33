import pytest
import torch


@pytest.fixture(autouse=True)
def float64():
    """Run every test in double precision."""
    old = torch.get_default_dtype()
    torch.set_default_dtype(torch.float64)
    yield
    torch.set_default_dtype(old)
