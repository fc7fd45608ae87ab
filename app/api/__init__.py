
from . import convert, ocr, parse

routers = [
    convert.router,
    ocr.router,
    parse.router,
]

__all__ = [
    "routers",
]
