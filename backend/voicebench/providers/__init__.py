from .executor import CallExecutor
from .paths import MISSING, extract, extract_or
from .registry import TemplateRegistry
from .renderer import render
from .request_builder import TransportRequest, build
from .templates import BUILTIN_TEMPLATES, builtin_templates

__all__ = [
    "BUILTIN_TEMPLATES",
    "CallExecutor",
    "MISSING",
    "TemplateRegistry",
    "TransportRequest",
    "build",
    "builtin_templates",
    "extract",
    "extract_or",
    "render",
]
