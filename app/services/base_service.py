"""
Base service class.

Session handling, policy injection and the transaction / timing
decorators shared by all rewards services.
"""

import functools
import time
from collections.abc import Callable
from typing import Any, TypeVar

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from app.config.reward_policy import DEFAULT_POLICY, RewardPolicy
from app.utils.exceptions import ProfileConflictError, ValidationError


T = TypeVar("T")


class BaseService:
    """
    Base service class.

    Every service receives its RewardPolicy explicitly; algorithms never
    read global settings. Logs are bound to the concrete service name.
    """

    def __init__(
        self,
        session: AsyncSession,
        policy: RewardPolicy | None = None,
    ) -> None:
        self.session = session
        self.policy = policy or DEFAULT_POLICY
        self.logger = logger.bind(service=self.__class__.__name__)

    async def commit(self) -> None:
        """
        Commit current transaction.

        Raises:
            ProfileConflictError: If a versioned profile changed concurrently
        """
        try:
            await self.session.commit()
        except StaleDataError as e:
            await self.session.rollback()
            raise ProfileConflictError(str(e)) from e

    async def rollback(self) -> None:
        await self.session.rollback()

    async def refresh(self, obj: Any) -> None:
        await self.session.refresh(obj)


def transaction(func: Callable[..., T]) -> Callable[..., T]:
    """
    Run a service method as one unit of work.

    Commits on success and rolls back on any exception. A stale profile
    version becomes ProfileConflictError so callers can retry from a
    fresh read. Validation errors are caller mistakes: logged at INFO and
    re-raised unchanged.

    Usage:
        @transaction
        async def approve(self, assignment_id: int) -> ApprovalResult:
            ...
    """
    @functools.wraps(func)
    async def wrapper(self: BaseService, *args: Any, **kwargs: Any) -> Any:
        try:
            result = await func(self, *args, **kwargs)
            await self.commit()
            return result
        except ValidationError as e:
            await self.rollback()
            self.logger.info(
                f"Rejected {func.__name__}: {e.code}",
                extra={"function": func.__name__, "error": e.message, **e.context},
            )
            raise
        except StaleDataError as e:
            await self.rollback()
            self.logger.warning(
                f"Version conflict in {func.__name__}",
                extra={"function": func.__name__},
            )
            raise ProfileConflictError(str(e)) from e
        except Exception as e:
            await self.rollback()
            self.logger.error(
                f"Transaction failed in {func.__name__}",
                extra={"function": func.__name__, "error": str(e)},
            )
            raise

    return wrapper


def log_operation(func: Callable[..., T]) -> Callable[..., T]:
    """Log start, completion and duration of a long-running service method."""
    @functools.wraps(func)
    async def wrapper(self: BaseService, *args: Any, **kwargs: Any) -> Any:
        started = time.monotonic()
        self.logger.info(f"Starting {func.__name__}", extra={"function": func.__name__})

        try:
            result = await func(self, *args, **kwargs)
        except Exception as e:
            self.logger.error(
                f"Failed {func.__name__}",
                extra={
                    "function": func.__name__,
                    "duration_seconds": round(time.monotonic() - started, 3),
                    "error": str(e),
                },
            )
            raise

        self.logger.info(
            f"Completed {func.__name__}",
            extra={
                "function": func.__name__,
                "duration_seconds": round(time.monotonic() - started, 3),
            },
        )
        return result

    return wrapper
