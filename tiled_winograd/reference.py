"""
Direct (non-Winograd) 3x3 valid convolution, used to cross-check the pipeline.
"""

import numpy as np
import torch
import torch.nn.functional as F


def direct_conv2d(filters, image):
    """Valid cross-correlation in float64.

    Args:
        filters: [K, C, 3, 3] array.
        image:   [C, H, W] array.

    Returns:
        [K, H-2, W-2] float32 numpy array.
    """
    w = torch.as_tensor(np.asarray(filters), dtype=torch.float64)
    x = torch.as_tensor(np.asarray(image), dtype=torch.float64).unsqueeze(0)
    assert w.dim() == 4 and x.dim() == 4 and w.shape[1] == x.shape[1], \
        f"filters {tuple(w.shape)} do not match image {tuple(x.shape[1:])}"
    return F.conv2d(x, w)[0].numpy().astype(np.float32)
