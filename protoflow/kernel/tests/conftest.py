"""
Kernel test configuration.

Shared app document: three pages behind a two-item tab bar, one modal, one
action sheet, and a small initial state tree.
"""

import pytest

from protoflow.models.app import AppConfig


def sample_app_dict():
    return {
        "id": "demo",
        "name": "Demo",
        "router": {"mode": "tab", "initialPageId": "home"},
        "tabBar": {
            "selectedIndex": 0,
            "items": [
                {"title": "Home", "pageId": "home"},
                {"title": "Me", "pageId": "profile"},
            ],
        },
        "pages": [
            {
                "id": "home",
                "name": "Home",
                "componentTree": {
                    "type": "Page",
                    "children": [
                        {"type": "Text", "text": {"$template": "Hi ${/user/name}"}},
                        {
                            "type": "Banner",
                            "visible": {"$state": "/user/premium", "eq": True},
                            "text": "VIP",
                        },
                        {
                            "type": "Button",
                            "text": "Details",
                            "onTap": {"type": "navigateTo", "pageId": "details"},
                        },
                    ],
                },
            },
            {"id": "details", "name": "Details", "componentTree": {"type": "Page", "children": []}},
            {"id": "profile", "name": "Profile", "componentTree": {"type": "Page", "children": []}},
        ],
        "modals": {
            "confirm": {
                "title": "Confirm",
                "content": "Are you sure?",
                "buttons": [{"text": "OK", "type": "primary"}],
            },
        },
        "actionSheets": {
            "share": {"title": "Share", "options": [{"text": "Copy link"}], "cancelText": "Cancel"},
        },
        "state": {
            "user": {"name": "Ada", "premium": False},
            "cart": {"count": 0},
        },
    }


@pytest.fixture
def app_dict():
    return sample_app_dict()


@pytest.fixture
def app(app_dict):
    return AppConfig.model_validate(app_dict)
