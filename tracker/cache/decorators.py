from functools import wraps
from typing import Any, Callable

from pydantic import TypeAdapter


def async_cached(namespace: str, key_builder: Callable[..., Any], model: Any = None, l2_ttl: int = None):
    """
    Cache-aside decorator for async service methods. The instance must expose
    the shared CacheLayer as ``self.cache``; key_builder receives the same
    args/kwargs as the method (without self).

    Values are stored in JSON mode; when ``model`` is given (a pydantic model
    or any type TypeAdapter accepts, e.g. ``list[ProjectResponse]``) the
    cached value is validated back into it on the way out.

    Example:
      @async_cached(TASKS, lambda task_id: task_id, model=TaskResponse)
      async def _load_task(self, task_id): ...
    """
    adapter = TypeAdapter(model) if model is not None else None

    def decorator(fn: Callable):
        @wraps(fn)
        async def wrapper(self, *args, **kwargs):
            key = key_builder(*args, **kwargs)

            # loader closure calls the original function
            async def loader():
                value = await fn(self, *args, **kwargs)
                if value is None:
                    return None
                if adapter is not None:
                    return adapter.dump_python(value, mode="json")
                if hasattr(value, "model_dump"):
                    return value.model_dump(mode="json")
                return value

            cached = await self.cache.get(namespace, key, loader=loader, l2_ttl=l2_ttl)
            if cached is None or adapter is None:
                return cached
            return adapter.validate_python(cached)

        return wrapper

    return decorator


def to_cache_value(model) -> Any:
    """JSON-mode dump used for write-through puts."""
    return model.model_dump(mode="json")
