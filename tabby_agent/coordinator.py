"""
Request coordination for tabby-agent.

Every outbound call goes through RequestCoordinator.call_api(), which:
1. Issues the transport call as a CancelableTask (cancel reaches the transport)
2. On success, reports success to the ConnectionSupervisor
3. On failure, classifies the error, reports the outcome and re-raises
   the original exception unchanged

The completion path adds a cache lookup, context windowing and a
blank-prefix short-circuit in front of the network call.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Callable, Optional, TypeVar, Union

from tabby_agent._core.supervisor import ConnectionSupervisor
from tabby_agent.cache import CompletionCache
from tabby_agent.cancelable import CancelableTask
from tabby_agent.config import ConfigStore
from tabby_agent.errors import ErrorKind, NotInitializedError, classify_error
from tabby_agent.postprocess import postprocess
from tabby_agent.segments import create_segments, is_blank
from tabby_agent.types import (
    AgentStatus,
    CompletionRequest,
    CompletionResponse,
    LogEventRequest,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

PostProcessor = Callable[[CompletionRequest, CompletionResponse], CompletionResponse]


class RequestCoordinator:
    """
    Wraps API calls with cancellation, classification and status feedback.

    Args:
        supervisor: Receives call outcomes and provides the bound API client
        config: Source of the completion window sizes
        cache: Completion cache (a fresh one by default)
        postprocessor: Transform applied to every network response
        log: Logger to use instead of the module logger
    """

    def __init__(
        self,
        supervisor: ConnectionSupervisor,
        config: ConfigStore,
        cache: Optional[CompletionCache] = None,
        postprocessor: PostProcessor = postprocess,
        log: Optional[logging.LoggerAdapter] = None,
    ) -> None:
        self._supervisor = supervisor
        self._config = config
        self._cache = cache if cache is not None else CompletionCache()
        self._postprocess = postprocessor
        self._logger = log or logger

    @property
    def cache(self) -> CompletionCache:
        return self._cache

    def call_api(self, name: str, *args: Any) -> CancelableTask[Any]:
        """
        Call API operation name on the bound client.

        Args:
            name: Transport method ("health", "completion" or "event")
            *args: Arguments for the transport method

        Returns:
            A CancelableTask resolving to the transport response
        """
        self._logger.debug(f"API request {name}: {args!r}")
        pending = getattr(self._supervisor.api, name)(*args)
        return CancelableTask(self._settle(name, pending), on_cancel=pending.cancel)

    async def _settle(self, name: str, pending: CancelableTask[T]) -> T:
        try:
            response = await pending
        except asyncio.CancelledError:
            self._logger.debug(f"API request {name} canceled")
            raise
        except Exception as e:
            kind = classify_error(e)
            if kind is ErrorKind.CANCELED:
                self._logger.debug(f"API request {name} canceled")
            elif kind is ErrorKind.AUTH_REJECTED:
                self._logger.debug(f"API request {name} unauthorized: {e}")
            elif kind is ErrorKind.API_ERROR:
                self._logger.error(f"API request {name} failed: {e}")
            else:
                self._logger.error(
                    f"API request {name} failed with unknown error: {type(e).__name__}: {e}"
                )
            self._supervisor.report_failure(kind)
            raise
        self._logger.debug(f"API response {name}: {response!r}")
        self._supervisor.report_success()
        return response

    async def health_check(self) -> None:
        """Probe the server to refresh the status. Never raises."""
        try:
            await self.call_api("health")
        except Exception as e:
            self._logger.debug(f"Health check failed: {type(e).__name__}: {e}")

    def _require_initialized(self) -> None:
        if self._supervisor.status == AgentStatus.NOT_INITIALIZED:
            raise NotInitializedError()

    def get_completions(self, request: CompletionRequest) -> CancelableTask[CompletionResponse]:
        """
        Get completions for request.

        Raises:
            NotInitializedError: Immediately, if the agent is not initialized

        Returns:
            A CancelableTask; cancelling it aborts the network call. Results
            served from the cache or the blank-prefix short-circuit are
            already resolved and cancelling them does nothing.
        """
        self._require_initialized()

        cached = self._cache.get(request)
        if cached is not None:
            self._logger.debug("Completion cache hit")
            return CancelableTask.resolved(cached)

        segments = create_segments(
            request,
            max_prefix_lines=self._config.max_prefix_lines,
            max_suffix_lines=self._config.max_suffix_lines,
        )
        if is_blank(segments.prefix):
            self._logger.debug("Segment prefix is blank, returning empty completion response")
            return CancelableTask.resolved(
                CompletionResponse(id=f"agent-{uuid.uuid4()}", choices=())
            )

        payload = {
            "language": request.language,
            "segments": {"prefix": segments.prefix, "suffix": segments.suffix},
        }
        user = self._supervisor.user
        if user:
            payload["user"] = user

        pending = self.call_api("completion", payload)
        return CancelableTask(self._complete(request, pending), on_cancel=pending.cancel)

    async def _complete(
        self,
        request: CompletionRequest,
        pending: CancelableTask[CompletionResponse],
    ) -> CompletionResponse:
        response = self._postprocess(request, await pending)
        self._cache.set(request, response)
        return response

    def post_event(self, request: Union[LogEventRequest, dict]) -> CancelableTask[bool]:
        """
        Post a completion usage event.

        Raises:
            NotInitializedError: Immediately, if the agent is not initialized
        """
        self._require_initialized()
        return self.call_api("event", request)
