from . import hello, http, smtp
from .dispatcher import (
    ActionDispatcher,
    RegistryDispatcher,
    SubprocessDispatcher,
    build_dispatcher,
)

BUILTIN_ACTIONS = {
    "hello": hello.run,
    "http": http.run,
    "smtp": smtp.run,
}

__all__ = [
    "ActionDispatcher",
    "RegistryDispatcher",
    "SubprocessDispatcher",
    "build_dispatcher",
    "BUILTIN_ACTIONS",
]
