"""Dynamically fetched option sets for configuration components."""

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..core.exceptions import WorkflowEngineError
from ..core.logging import get_logger
from ..models.ui_schema import UIOption, coerce_options

logger = get_logger(__name__)

OptionFetch = Callable[[], Awaitable[List[Any]]]
OptionListener = Callable[[str], None]


class DynamicOptionBinding:
    """Ties a component's option list to the values of the form.

    ``key_for`` derives the cache key from the current form values (None
    while the governing field is unset) and ``loader`` builds the fetch for
    that key.
    """

    def __init__(
        self,
        consumer: str,
        key_for: Callable[[Dict[str, Any]], Optional[str]],
        loader: Callable[[Dict[str, Any]], OptionFetch],
        depends_on: Optional[str] = None,
        placeholder: str = "Select an option",
        loading_text: str = "Loading options..."
    ):
        self.consumer = consumer
        self.key_for = key_for
        self.loader = loader
        self.depends_on = depends_on
        self.placeholder = placeholder
        self.loading_text = loading_text


def model_binding(fetch_models: Callable[[str], Awaitable[List[str]]]) -> DynamicOptionBinding:
    """``model`` options keyed by the selected ``service``."""

    def key_for(values: Dict[str, Any]) -> Optional[str]:
        service = values.get("service")
        return f"models_{service}" if service else None

    def loader(values: Dict[str, Any]) -> OptionFetch:
        service = values["service"]

        async def fetch():
            return await fetch_models(service)

        return fetch

    return DynamicOptionBinding(
        consumer="model",
        key_for=key_for,
        loader=loader,
        depends_on="service",
        placeholder="Select a service first",
        loading_text="Loading models..."
    )


def collection_binding(fetch_collections: Callable[[], Awaitable[List[Any]]]) -> DynamicOptionBinding:
    """``collection_name`` options from the vector store."""
    return DynamicOptionBinding(
        consumer="collection_name",
        key_for=lambda values: "collections",
        loader=lambda values: fetch_collections,
        loading_text="Loading collections..."
    )


def default_bindings(client) -> List[DynamicOptionBinding]:
    return [model_binding(client.get_models), collection_binding(client.get_collections)]


class DynamicOptionStore:
    """Option lists cached by key, fetched at most once at a time per key.

    A fetch only ever writes its own key. Failed fetches leave the key
    uncached so the next request retries.
    """

    def __init__(self):
        self._options: Dict[str, List[UIOption]] = {}
        self._inflight: Dict[str, asyncio.Task] = {}
        self._failed: Dict[str, str] = {}
        self._listeners: List[OptionListener] = []

    def get(self, key: Optional[str]) -> Optional[List[UIOption]]:
        if key is None:
            return None
        options = self._options.get(key)
        return list(options) if options is not None else None

    def has(self, key: str) -> bool:
        return key in self._options

    def is_loading(self, key: Optional[str]) -> bool:
        return key is not None and key in self._inflight

    def error(self, key: str) -> Optional[str]:
        return self._failed.get(key)

    def subscribe(self, listener: OptionListener) -> Callable[[], None]:
        """Call ``listener(key)`` whenever a fetch for ``key`` settles."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def request(self, key: str, fetch: OptionFetch) -> Optional[asyncio.Task]:
        """Start fetching ``key`` unless it is cached or already in flight.

        Must be called from inside a running event loop.
        """
        if key in self._options:
            return None
        task = self._inflight.get(key)
        if task is not None:
            return task
        task = asyncio.get_running_loop().create_task(self._run(key, fetch))
        self._inflight[key] = task
        logger.debug(f"Fetching options for {key}")
        return task

    async def _run(self, key: str, fetch: OptionFetch) -> None:
        try:
            raw = await fetch()
            self._options[key] = coerce_options(raw)
            self._failed.pop(key, None)
            logger.debug(f"Loaded {len(self._options[key])} options for {key}")
        except WorkflowEngineError as e:
            self._failed[key] = e.message
            logger.warning(f"Could not load options for {key}: {e.message}")
        except Exception as e:
            self._failed[key] = str(e) or type(e).__name__
            logger.error(f"Option source for {key} failed: {str(e)}", exc_info=True)
        finally:
            if self._inflight.get(key) is asyncio.current_task():
                del self._inflight[key]

        for listener in list(self._listeners):
            try:
                listener(key)
            except Exception as e:
                logger.error(f"Option listener failed for {key}: {str(e)}", exc_info=True)

    async def wait_for_pending(self) -> None:
        """Wait until every in-flight fetch has settled."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight.values()), return_exceptions=True)

    def clear(self) -> None:
        """Drop every cached list and cancel outstanding fetches."""
        for task in self._inflight.values():
            task.cancel()
        self._inflight.clear()
        self._options.clear()
        self._failed.clear()
