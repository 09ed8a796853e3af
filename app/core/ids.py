import uuid
from typing import Callable


def gen_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


def id_default(prefix: str) -> Callable[[], str]:
    """Column default producing ids like `lst_<hex>`."""
    return lambda: gen_id(prefix)
