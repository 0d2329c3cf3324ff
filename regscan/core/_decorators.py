import inspect
from functools import wraps
from typing import Any, Callable, TypeVar, cast

from ._operation import Operation
from .exceptions import NotSupportedError

T = TypeVar("T", bound=Callable[..., Any])


def _bind_operation(func: Callable, name: str, args, kwargs) -> Operation:
    sig = inspect.signature(func)
    bound_args = sig.bind(*args, **kwargs)
    bound_args.apply_defaults()
    return Operation.normalize(name=name, args=dict(bound_args.arguments))


def operation(**config: Any) -> Callable[[T], T]:
    """Route a component method to its bound provider.

    The provider method with the same name (without the ``a`` prefix
    for coroutines) receives the bound arguments. When the component
    has no provider, or the provider does not implement the
    operation, the component's own body runs instead.
    """

    def decorator(func: T) -> T:
        setattr(func, "__operation__", True)
        setattr(func, "__config__", config)
        if not inspect.iscoroutinefunction(func):

            @wraps(func)
            def wrapper(*args, **kwargs) -> Any:
                self = args[0]
                context = kwargs.pop("__context__", None)
                if not hasattr(self, "__provider__"):
                    return func(*args, **kwargs)
                operation = _bind_operation(func, func.__name__, args, kwargs)
                try:
                    return self.__run__(operation, context)
                except NotSupportedError:
                    return func(*args, **kwargs)

            return cast(T, wrapper)

        @wraps(func)
        async def awrapper(*args, **kwargs) -> Any:
            self = args[0]
            context = kwargs.pop("__context__", None)
            if not hasattr(self, "__provider__"):
                return await func(*args, **kwargs)
            operation = _bind_operation(func, func.__name__[1:], args, kwargs)
            try:
                return await self.__arun__(operation, context)
            except NotSupportedError:
                return await func(*args, **kwargs)

        return cast(T, awrapper)

    return decorator
