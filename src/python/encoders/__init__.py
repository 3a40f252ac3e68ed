from .encoder import BinaryEncoder, get_encoder_class  # noqa: F401
from .hiob import StochasticHIOB  # noqa: F401
