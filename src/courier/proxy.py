"""Generated implementations of declared interfaces.

The proxy is a subclass of the interface created at build time. Each
dispatched method forwards to an InvocationHandler, which looks up the
method's MethodHandler; methods marked ``@default_method`` are inherited
unchanged and run locally. Equality, hashing and ``repr`` follow the Target.
"""

from __future__ import annotations

import functools
from collections.abc import Mapping, Sequence
from typing import Any, Callable

from .handler import MethodHandler
from .metadata import CallStyle, MethodMetadata
from .target import Target


class InvocationHandler:
    """Routes calls of a proxy to the MethodHandler of each method."""

    def __init__(self, target: Target, dispatch: Mapping[str, MethodHandler]):
        self.target = target
        self.dispatch = dict(dispatch)

    def invoke(self, name: str, args: Sequence[Any], kwargs: Mapping[str, Any]) -> Any:
        return self.dispatch[name].invoke(args, kwargs)


class InvocationHandlerFactory:
    """Creates the InvocationHandler of a new client; capabilities may wrap it."""

    def create(self, target: Target, dispatch: Mapping[str, MethodHandler]) -> InvocationHandler:
        return InvocationHandler(target, dispatch)


def _dispatching_method(name: str, original: Callable[..., Any], call_style: CallStyle) -> Callable[..., Any]:
    if call_style is CallStyle.COROUTINE:

        async def method(self, *args: Any, **kwargs: Any) -> Any:
            return await self._courier_handler.invoke(name, args, kwargs)

    else:

        def method(self, *args: Any, **kwargs: Any) -> Any:
            return self._courier_handler.invoke(name, args, kwargs)

    functools.update_wrapper(method, original)
    method.__isabstractmethod__ = False
    return method


def _proxy_eq(self, other: object) -> bool:
    other_target = getattr(other, "_courier_target", None)
    if other_target is None:
        return NotImplemented
    return self._courier_target == other_target


def _proxy_hash(self) -> int:
    return hash(self._courier_target)


def _proxy_repr(self) -> str:
    return repr(self._courier_target)


def new_proxy(target: Target, metadata: Sequence[MethodMetadata], handler: InvocationHandler) -> Any:
    """Instantiate a generated subclass of ``target.type`` bound to ``handler``."""
    interface = target.type
    namespace: dict[str, Any] = {
        "__module__": interface.__module__,
        "__qualname__": f"{interface.__qualname__}Client",
        "__eq__": _proxy_eq,
        "__hash__": _proxy_hash,
        "__repr__": _proxy_repr,
    }
    for method in metadata:
        if method.is_default_method:
            continue
        original = getattr(interface, method.method_name)
        namespace[method.method_name] = _dispatching_method(
            method.method_name, original, method.call_style
        )

    proxy_type = type(f"{interface.__name__}Client", (interface,), namespace)
    proxy = object.__new__(proxy_type)
    proxy.__dict__["_courier_handler"] = handler
    proxy.__dict__["_courier_target"] = target
    return proxy
