"""Renderers: kida templates and JSON."""

from flurry.rendering.json import JsonRenderer
from flurry.rendering.methods import TEMPLATE_METHOD_ARGUMENTS, TemplateMethodProxy
from flurry.rendering.templates import TemplateRenderer

__all__ = [
    "TEMPLATE_METHOD_ARGUMENTS",
    "JsonRenderer",
    "TemplateMethodProxy",
    "TemplateRenderer",
]
