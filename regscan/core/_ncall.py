from __future__ import annotations

from typing import Any, Callable


class NCall:
    """Deferred call to a native client method.

    With ``return_error`` the call yields a ``(result, error)`` pair
    instead of raising, so callers can keep going on partial failure.
    Exception types present in ``error_map`` are either re-raised as
    the mapped exception or, when mapped to ``None``, treated as an
    empty result.
    """

    function: Callable
    args: dict[str, Any] | None
    nargs: dict[str, Any] | None
    error_map: dict[Any, Any] | None

    def __init__(
        self,
        function: Callable,
        args: dict[str, Any] | None = None,
        nargs: dict[str, Any] | None = None,
        error_map: dict[Any, Any] | None = None,
    ):
        self.function = function
        self.args = args
        self.nargs = nargs
        self.error_map = error_map

    def __repr__(self) -> str:
        return str(self.function)

    def get_arg(self, name: str) -> Any:
        if self.args is not None and name in self.args:
            return self.args[name]
        return None

    def set_arg(self, name: str, value: Any) -> None:
        if self.args is None:
            self.args = dict()
        self.args[name] = value

    def invoke(self, return_error: bool = False) -> Any:
        kwargs = (self.args or dict()) | (self.nargs or dict())
        try:
            result = self.function(**kwargs)
        except Exception as e:
            if self.error_map is not None and type(e) in self.error_map:
                mapped = self.error_map[type(e)]
                if mapped is not None:
                    raise mapped from e
                return (None, None) if return_error else None
            if return_error:
                return (None, e)
            raise
        return (result, None) if return_error else result
