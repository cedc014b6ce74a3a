"""Data subpackage: synthetic regression generators and preprocessing."""

from .generators import generate_synthetic, synthetic_config_from_dict, SyntheticConfig, SyntheticDataset
from .preprocess import center_y, standardize_X
