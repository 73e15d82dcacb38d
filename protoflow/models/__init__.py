"""Pydantic models for ProtoFlow application documents."""

from protoflow.models.app import (
    ActionSheet,
    AppConfig,
    Modal,
    ModalButton,
    Page,
    Router,
    TabBar,
    TabBarItem,
    load_app,
)

__all__ = [
    "ActionSheet",
    "AppConfig",
    "Modal",
    "ModalButton",
    "Page",
    "Router",
    "TabBar",
    "TabBarItem",
    "load_app",
]
