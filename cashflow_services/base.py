"""
BaseService -- common constructor for the cash-flow services.

Responsibility:
    Holds the collaborators every service shares: the caller's SQLAlchemy
    ``Session``, an injected ``Clock``, an injected logger and the window
    for multi-row units of work.

Architecture position:
    Services -- imperative shell.  Subclasses compose pure engines
    (cashflow_engines) with the session and the amount codec.

Invariants enforced:
    - Public write operations run inside ``unit_of_work`` and either fully
      commit or fully roll back.
    - Private ``_`` helpers only add and flush; they never commit, so a
      caller can compose several of them inside one unit of work.
    - Services never read the wall clock directly; ``self.clock`` is the
      only source of "now".
"""

import logging
from abc import ABC
from contextlib import AbstractContextManager

from sqlalchemy.orm import Session

from cashflow_kernel.db.unit_of_work import DEFAULT_TIMEOUT_SECONDS, unit_of_work
from cashflow_kernel.domain.clock import Clock, SystemClock
from cashflow_kernel.logging_config import get_logger


class BaseService(ABC):
    """
    Abstract base class for the cash-flow services.

    Args:
        session: Open SQLAlchemy session owned by the request.
        clock: Time source.  Defaults to SystemClock.
        logger: Injected logger.  Defaults to ``get_logger(cls._logger_name)``.
        uow_timeout_seconds: Window for each unit of work.
    """

    _logger_name = "services"

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        logger: logging.Logger | None = None,
        uow_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        self.session = session
        self.clock = clock or SystemClock()
        self.logger = logger or get_logger(self._logger_name)
        self.uow_timeout_seconds = uow_timeout_seconds

    def _unit_of_work(self, operation: str) -> AbstractContextManager[Session]:
        return unit_of_work(self.session, operation, self.uow_timeout_seconds)
