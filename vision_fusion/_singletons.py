# vision_fusion/_singletons.py
from functools import lru_cache
from .recognizers import default_recognizers
from .service import VisionService

@lru_cache(maxsize=1)
def get_recognizers():
    # loaded once per process, shared read-only by every request
    recognizers = default_recognizers()
    for r in recognizers:
        r.load()
    return tuple(recognizers)

@lru_cache(maxsize=1)
def get_vision_service():
    return VisionService(get_recognizers())
