"""Handler references, argument resolution, and the handler registry."""

from flurry.handlers.refs import (
    ActionHandlerRef,
    ExceptionCatcherRef,
    HandlerKind,
    HandlerRef,
    ModelHandlerRef,
    ResourceHandlerRef,
    TemplateMethodHandlerRef,
)
from flurry.handlers.registry import HandlerRegistry

__all__ = [
    "ActionHandlerRef",
    "ExceptionCatcherRef",
    "HandlerKind",
    "HandlerRef",
    "HandlerRegistry",
    "ModelHandlerRef",
    "ResourceHandlerRef",
    "TemplateMethodHandlerRef",
]
