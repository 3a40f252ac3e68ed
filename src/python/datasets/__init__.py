from .sisap import ArraySource, DatasetSource, H5Source, SisapLaion  # noqa: F401
