from __future__ import annotations

from functools import wraps
from pathlib import Path
from time import ctime
from typing import IO, Union

from ase.utils import IOContext
from ase.utils.timing import Timer

from pwresponse.mpi import world

TXTFilename = Union[Path, str]


class ResponseContext:
    """Log file and timer shared by the response calculations.

    txt: '-' (stdout of rank 0), a filename, an open file or None (silent).
    Only rank 0 of ``comm`` writes.
    """
    def __init__(self, txt: TXTFilename | IO[str] | None = '-',
                 timer: Timer | None = None, comm=world):
        self.comm = comm
        self.iocontext = IOContext()
        self.fd = self.iocontext.openfile(txt, comm)
        self.timer = timer or Timer()

    def print(self, *args, **kwargs):
        print(*args, file=self.fd, flush=True, **kwargs)

    def write_timer(self):
        self.timer.write(self.fd)
        self.print(ctime())

    def close(self):
        self.iocontext.close()

    def __del__(self):
        self.close()


def ensure_context(context: ResponseContext | TXTFilename | None
                   ) -> ResponseContext:
    """Use context as it is or open a new one writing to context.

    None gives a silent context."""
    if isinstance(context, ResponseContext):
        return context
    return ResponseContext(txt=context)


def timer(name: str):
    """Time a method of an object with a ``context`` attribute::

        class Chi0Operator:
            @timer('Apply chi0')
            def apply(self, dv_sR):
                ...
    """
    def decorator(method):
        @wraps(method)
        def timed_method(self, *args, **kwargs):
            self.context.timer.start(name)
            try:
                return method(self, *args, **kwargs)
            finally:
                self.context.timer.stop(name)
        return timed_method
    return decorator
