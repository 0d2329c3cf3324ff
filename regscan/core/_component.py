from __future__ import annotations

import uuid
from typing import Any

from ._context import Context
from ._operation import Operation
from ._provider import Provider
from .exceptions import NotSupportedError


class Component:
    __provider__: Provider
    __handle__: str | None
    __type__: str
    __unpack__: bool

    def __init__(
        self,
        **kwargs,
    ):
        self.__unpack__ = kwargs.pop("__unpack__", False)
        self.__handle__ = kwargs.pop("__handle__", None)
        self.__type__ = kwargs.pop("__type__", self.__class__.__module__)
        if "__provider__" in kwargs:
            self.__bind__(kwargs.pop("__provider__"))

    def __bind__(
        self,
        provider: Provider | dict | str | None,
    ) -> None:
        if provider is None:
            return
        if isinstance(provider, Provider):
            provider.__component__ = self
            self.__provider__ = provider
            return
        if isinstance(provider, dict):
            provider = dict(provider)
            type = provider.pop("type")
            parameters = dict(provider.pop("parameters", dict()))
        else:
            type = provider
            parameters = dict()
        from ._loader import Loader

        module_name = self.__class__.__module__.rsplit(".", 1)[0]
        provider_instance = Loader.load_provider_instance(
            path=f"{module_name}.providers.{type}",
            parameters=parameters,
        )
        self.__bind__(provider=provider_instance)

    def __setup__(self, context: Context | None = None) -> None:
        self.__provider__.__setup__(context=context)

    def __run__(
        self,
        operation: Operation,
        context: dict | Context | None = None,
        **kwargs,
    ) -> Any:
        if not hasattr(self, "__provider__"):
            raise NotSupportedError(str(operation))
        response = self.__provider__.__run__(
            operation=operation,
            context=self._init_context(context),
            **kwargs,
        )
        return self._unpack(response)

    async def __arun__(
        self,
        operation: Operation,
        context: dict | Context | None = None,
        **kwargs,
    ) -> Any:
        if not hasattr(self, "__provider__"):
            raise NotSupportedError(str(operation))
        response = await self.__provider__.__arun__(
            operation=operation,
            context=self._init_context(context),
            **kwargs,
        )
        return self._unpack(response)

    def _unpack(self, response: Any) -> Any:
        from ._response import Response

        if self.__unpack__ and isinstance(response, Response):
            return response.result
        return response

    def _init_context(
        self,
        context: dict | Context | None,
    ) -> Context:
        if isinstance(context, dict):
            context = Context.from_dict(context)
        if context is not None and context.id is not None:
            return context
        return Context(
            id=str(uuid.uuid4()),
            data=context.data if context else None,
        )
