from ._component import Component
from ._context import Context
from ._decorators import operation
from ._loader import Loader
from ._ncall import NCall
from ._operation import Operation
from ._provider import Provider
from ._response import Response
from ._yaml_loader import YamlLoader
from .data_model import DataModel

__all__ = [
    "Component",
    "Context",
    "DataModel",
    "Loader",
    "NCall",
    "Operation",
    "Provider",
    "Response",
    "YamlLoader",
    "operation",
]
