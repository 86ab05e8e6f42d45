"""Best-effort side effects that run after the primary write commits.

Notification fan-out and directory mirroring go through this queue so a
failure there can never fail or roll back the request that caused it.
Failures are logged and recorded in ``side_effect_failures``.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from proflink.database import SessionLocal
from proflink.models.side_effect import SideEffectFailure

logger = logging.getLogger(__name__)


@dataclass
class SideEffect:
    name: str
    func: Callable[..., Any]
    kwargs: dict = field(default_factory=dict)
    with_session: bool = True


class SideEffectQueue:
    """Collects side effects during a request and runs them afterwards.

    Each task gets its own database session from ``session_factory`` and is
    called as ``func(db, **kwargs)``. Tasks enqueued with
    ``with_session=False`` are called as ``func(**kwargs)``.
    """

    def __init__(self, session_factory: sessionmaker = SessionLocal):
        self.session_factory = session_factory
        self.pending: list[SideEffect] = []

    def enqueue(self, name: str, func: Callable[..., Any], /, *, with_session: bool = True, **kwargs) -> None:
        self.pending.append(SideEffect(name=name, func=func, kwargs=kwargs, with_session=with_session))

    def flush(self) -> list[str]:
        """Run every pending task. Returns the names of the tasks that failed."""
        tasks, self.pending = self.pending, []
        failed: list[str] = []
        for task in tasks:
            if not task.with_session:
                try:
                    task.func(**task.kwargs)
                except Exception as exc:
                    failed.append(task.name)
                    self._report_failure(task, exc)
                continue

            db = self.session_factory()
            try:
                task.func(db, **task.kwargs)
                db.commit()
            except Exception as exc:
                db.rollback()
                failed.append(task.name)
                self._report_failure(task, exc)
            finally:
                db.close()
        return failed

    def _report_failure(self, task: SideEffect, exc: Exception) -> None:
        logger.warning('Side effect %s failed: %s', task.name, exc)
        self._record_failure(task, exc)

    def _record_failure(self, task: SideEffect, exc: Exception) -> None:
        db: Session = self.session_factory()
        try:
            db.add(
                SideEffectFailure(
                    task_name=task.name,
                    error=str(exc) or exc.__class__.__name__,
                    payload={key: str(value) for key, value in task.kwargs.items()},
                )
            )
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception('Could not record failure of side effect %s', task.name)
        finally:
            db.close()


def get_side_effect_queue() -> SideEffectQueue:
    return SideEffectQueue()
