import numpy as np
import pytest
import torch

from tiled_winograd import create_run_context

DEVICE = "cuda" if torch.cuda.is_available() else "cpu"
SEED = 42


@pytest.fixture(autouse=True)
def seed():
    torch.manual_seed(SEED)
    np.random.seed(SEED)


@pytest.fixture
def ctx():
    run_ctx = create_run_context(backend="torch", device=DEVICE)
    yield run_ctx
    run_ctx.release()


@pytest.fixture
def rng():
    return np.random.default_rng(SEED)
