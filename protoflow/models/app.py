"""Application configuration models for ProtoFlow mockups."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    """Accepts the camelCase keys of the app JSON as well as field names."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")


class Page(_CamelModel):
    id: str
    name: str = ""
    description: str | None = None
    component_tree: dict[str, Any] = Field(default_factory=dict, alias="componentTree")


class TransitionConfig(_CamelModel):
    type: Literal["push", "fade", "slide"] = "push"
    duration: int | None = None


class Router(_CamelModel):
    mode: Literal["tab", "stack", "modal"] = "stack"
    initial_page_id: str = Field(alias="initialPageId")
    history_limit: int | None = Field(default=None, alias="historyLimit", ge=1)
    transition: TransitionConfig | None = None


class TabBarItem(_CamelModel):
    title: str = ""
    icon: str = ""
    selected_icon: str = Field(default="", alias="selectedIcon")
    page_id: str = Field(alias="pageId")
    disabled: bool = False
    badge: int | str | None = None


class TabBar(_CamelModel):
    type: Literal["tabBar"] = "tabBar"
    selected_index: int = Field(default=0, alias="selectedIndex")
    background_color: str | None = Field(default=None, alias="backgroundColor")
    height: int | None = None
    show_divider: bool | None = Field(default=None, alias="showDivider")
    items: list[TabBarItem] = Field(default_factory=list)


class ModalButton(_CamelModel):
    text: str
    type: Literal["primary", "secondary", "danger"] | None = None
    on_click_action: dict[str, Any] | None = Field(default=None, alias="onClickAction")


class Modal(_CamelModel):
    type: Literal["modal"] = "modal"
    title: str = ""
    content: str = ""
    closable: bool | None = None
    mask_closable: bool | None = Field(default=None, alias="maskClosable")
    width: int | None = None
    background_color: str | None = Field(default=None, alias="backgroundColor")
    buttons: list[ModalButton] = Field(default_factory=list)

    def to_config(self) -> dict[str, Any]:
        """The payload handed to the modal presentation callback."""
        return {
            "title": self.title,
            "content": self.content,
            "closable": self.closable,
            "maskClosable": self.mask_closable,
            "buttons": [b.model_dump(by_alias=True, exclude_none=True) for b in self.buttons],
        }


class ActionSheet(_CamelModel):
    title: str | None = None
    options: list[dict[str, Any]] = Field(default_factory=list)
    cancel_text: str | None = Field(default=None, alias="cancelText")

    def to_config(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class AppConfig(_CamelModel):
    """
    The static application document: pages, router, tab bar, registries and
    the initial state tree. Read-only input to the runtime.
    """

    id: str = "app"
    name: str = ""
    version: str = "1.0.0"
    description: str | None = None
    pages: list[Page] = Field(default_factory=list)
    router: Router
    tab_bar: TabBar | None = Field(default=None, alias="tabBar")
    theme: dict[str, Any] | None = None
    modals: dict[str, Modal] = Field(default_factory=dict)
    action_sheets: dict[str, ActionSheet] = Field(default_factory=dict, alias="actionSheets")
    state: dict[str, Any] = Field(default_factory=dict)

    def find_page(self, page_id: str) -> Page | None:
        for page in self.pages:
            if page.id == page_id:
                return page
        return None


def load_app(source: AppConfig | dict[str, Any] | str | Path) -> AppConfig:
    """
    Build an AppConfig from a model, a mapping or a JSON file path.

    Documents wrapped as {"app": {...}} are unwrapped.
    """
    if isinstance(source, AppConfig):
        return source
    if isinstance(source, (str, Path)):
        source = json.loads(Path(source).read_text(encoding="utf-8"))
    if "app" in source and "router" not in source:
        source = source["app"]
    return AppConfig.model_validate(source)
