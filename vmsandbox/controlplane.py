"""Boundary to the virtualization engine's management interface."""

from __future__ import annotations

import abc
from typing import List

from vmsandbox.exceptions import ControlPlaneError
from vmsandbox.models import Registration


class ControlPlane(abc.ABC):
    """Domain operations keyed by instance name.

    Implementations raise ``ControlPlaneError`` for engine failures. A missing
    domain is not an error for ``exists``/``is_running``.
    """

    @abc.abstractmethod
    def exists(self, name: str) -> bool: ...

    @abc.abstractmethod
    def is_running(self, name: str) -> bool: ...

    @abc.abstractmethod
    def stop(self, name: str) -> None: ...

    @abc.abstractmethod
    def undefine(self, name: str, purge_firmware: bool) -> None: ...

    @abc.abstractmethod
    def define(self, definition: str) -> Registration: ...

    @abc.abstractmethod
    def start(self, name: str) -> None: ...

    @abc.abstractmethod
    def list_definitions(self) -> List[str]:
        """XML of every registered domain, used for identity collision checks."""


class UnavailableControlPlane(ControlPlane):
    """Stands in when the engine cannot be reached; every call re-raises the connect failure."""

    def __init__(self, error: ControlPlaneError) -> None:
        self.error = error

    def _fail(self, *args, **kwargs):
        raise self.error

    exists = is_running = stop = undefine = define = start = list_definitions = _fail
