from typing import Any

from ._async_helper import run_async
from ._context import Context
from ._operation import Operation
from .exceptions import NotSupportedError


class Provider:
    __component__: Any
    __handle__: str | None
    __type__: str

    def __init__(self, **kwargs):
        self.__handle__ = kwargs.pop("__handle__", None)
        self.__type__ = kwargs.pop("__type__", self.__class__.__module__)
        for key, value in kwargs.items():
            setattr(self, key, value)

    def __setup__(self, context: Context | None = None) -> None:
        pass

    def __run__(
        self,
        operation: Operation | None = None,
        context: Context | None = None,
        **kwargs,
    ) -> Any:
        if operation and operation.name:
            func = getattr(self, operation.name, None)
            if func and callable(func):
                self.__setup__(context=context)
                return func(**(operation.args or {}))
        raise NotSupportedError(str(operation) if operation else None)

    async def __arun__(
        self,
        operation: Operation | None = None,
        context: Context | None = None,
        **kwargs,
    ) -> Any:
        if operation and operation.name:
            afunc = getattr(self, f"a{operation.name}", None)
            if afunc and callable(afunc):
                self.__setup__(context=context)
                return await afunc(**(operation.args or {}))

        return await run_async(
            self.__run__,
            operation=operation,
            context=context,
            **kwargs,
        )
