# File: sheetforge/navigation.py
"""
SheetForge - Navigation Aggregator
==================================
Runs after every entity has been processed and derives three aggregates
from the entity names alone:

* the sidebar menu, grouping entities by ordered keyword rules (first
  matching group wins; unmatched entities become top-level links);
* the dashboard descriptor: one card per entity linking to its list page;
* the route table manifest: UI paths per entity plus the API routers the
  generated ``main.py`` includes. The backend loads this manifest as data
  instead of scanning its own directories.

All of them are overwritten on every run.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from sheetforge.models import GenerationConfig, MenuGroupRule
from sheetforge.utils import module_name, to_slug, to_title, to_type_name

logger: logging.Logger = logging.getLogger("sheetforge.navigation")

DEFAULT_ICON: str = "AppWindow"
QUICK_LINKS_TITLE: str = "Quick Links"
DASHBOARD_PATH: str = "/dashboard"
DASHBOARD_TITLE: str = "Dashboard"
DASHBOARD_COMPONENT: str = "Dashboard"

# Icons of individual (ungrouped) entries, keyed by lowercase title.
ITEM_ICONS: Dict[str, str] = {
    "user groups": "Users2",
    "users": "User",
    "catalogues": "Store",
    "categories": "Layers3",
    "brands": "Award",
    "products": "Package",
    "vouchers": "Gift",
    "orders": "ClipboardCheck",
    "admin users": "ShieldCheck",
    "contact us": "PhoneCall",
    "cms pages": "Newspaper",
}

_NAV_CONFIG: ConfigDict = ConfigDict(frozen=True, extra="forbid")


class MenuItem(BaseModel):
    model_config = _NAV_CONFIG

    title: str
    path: Optional[str] = None
    icon: str = DEFAULT_ICON
    kind: str = Field(default="link", description="'title', 'link' or 'group'.")
    children: List["MenuItem"] = Field(default_factory=list)


MenuItem.model_rebuild()


class NavigationMenu(BaseModel):
    model_config = _NAV_CONFIG

    items: List[MenuItem] = Field(default_factory=list)


class DashboardCard(BaseModel):
    model_config = _NAV_CONFIG

    entity: str
    title: str
    path: str
    icon: str = DEFAULT_ICON


class DashboardDescriptor(BaseModel):
    model_config = _NAV_CONFIG

    title: str = DASHBOARD_TITLE
    path: str = DASHBOARD_PATH
    cards: List[DashboardCard] = Field(default_factory=list)


class UiRoute(BaseModel):
    model_config = _NAV_CONFIG

    path: str
    component: str
    entity: Optional[str] = Field(default=None, description="None for pages not tied to an entity.")
    descriptor: str


class ApiRouter(BaseModel):
    model_config = _NAV_CONFIG

    entity: str
    prefix: str
    router_module: str
    model_module: str


class RouteTable(BaseModel):
    model_config = _NAV_CONFIG

    ui: List[UiRoute] = Field(default_factory=list)
    api: List[ApiRouter] = Field(default_factory=list)


def match_group(name: str, rules: Sequence[MenuGroupRule]) -> Optional[MenuGroupRule]:
    """First rule with a keyword contained in *name* (case-insensitive)."""
    lowered = name.lower()
    for rule in rules:
        if any(keyword in lowered for keyword in rule.keywords):
            return rule
    return None


def _item(name: str) -> MenuItem:
    title = to_title(name)
    return MenuItem(
        title=title,
        path=f"/{to_slug(name)}",
        icon=ITEM_ICONS.get(title.lower(), DEFAULT_ICON),
    )


def build_menu(entity_names: Sequence[str], config: GenerationConfig) -> NavigationMenu:
    """Group *entity_names* into the sidebar menu."""
    grouped: Dict[str, List[MenuItem]] = {rule.label: [] for rule in config.menu_groups}
    top_level: List[MenuItem] = []

    for name in entity_names:
        rule = match_group(name, config.menu_groups)
        if rule is None:
            top_level.append(_item(name))
        else:
            grouped[rule.label].append(_item(name))

    items: List[MenuItem] = [
        MenuItem(title=QUICK_LINKS_TITLE, path=DASHBOARD_PATH, kind="title")
    ]
    for rule in config.menu_groups:
        children = grouped[rule.label]
        if children:
            items.append(
                MenuItem(title=rule.label, icon=rule.icon, kind="group", children=children)
            )
    items.extend(top_level)

    logger.debug(
        "Menu: %d groups, %d top-level items",
        sum(1 for i in items if i.kind == "group"),
        len(top_level),
    )
    return NavigationMenu(items=items)


def build_dashboard(entity_names: Sequence[str]) -> DashboardDescriptor:
    """One card per entity, in sheet order, sharing the menu's titles and icons."""
    cards: List[DashboardCard] = []
    for name in entity_names:
        item = _item(name)
        cards.append(
            DashboardCard(entity=to_type_name(name), title=item.title, path=item.path, icon=item.icon)
        )
    logger.debug("Dashboard: %d cards", len(cards))
    return DashboardDescriptor(cards=cards)


def dashboard_descriptor_path(config: GenerationConfig) -> str:
    return f"{config.frontend_dir}/_dashboard/dashboard.json"


def build_route_table(
    entity_names: Sequence[str],
    config: GenerationConfig,
    routed_entities: Optional[Sequence[str]] = None,
    auth_entity: Optional[str] = None,
) -> RouteTable:
    """
    Combined route table. The dashboard route comes first, followed by the
    list/new/edit routes of each entity.

    Args:
        entity_names: Non-auth entities; each gets list/new/edit UI routes.
        routed_entities: Entities whose API router exists; defaults to
            *entity_names*.
        auth_entity: Name of the auth entity when its login router exists.
    """
    package = config.backend_package
    ui: List[UiRoute] = [
        UiRoute(
            path=DASHBOARD_PATH,
            component=DASHBOARD_COMPONENT,
            descriptor=dashboard_descriptor_path(config),
        )
    ]
    api: List[ApiRouter] = []

    for name in entity_names:
        slug = to_slug(name)
        type_name = to_type_name(name)
        base = f"{config.frontend_dir}/{slug}"
        ui.extend(
            [
                UiRoute(path=f"/{slug}", component=f"{type_name}List",
                        entity=type_name, descriptor=f"{base}/list.json"),
                UiRoute(path=f"/{slug}/new", component=f"{type_name}Form",
                        entity=type_name, descriptor=f"{base}/form.json"),
                UiRoute(path=f"/{slug}/{{id}}/edit", component=f"{type_name}Form",
                        entity=type_name, descriptor=f"{base}/form.json"),
            ]
        )

    for name in routed_entities if routed_entities is not None else entity_names:
        module = module_name(name)
        api.append(
            ApiRouter(
                entity=to_type_name(name),
                prefix=config.api_path(to_slug(name)),
                router_module=f"{package}.routes.{module}",
                model_module=f"{package}.models.{module}",
            )
        )

    if auth_entity is not None:
        module = module_name(auth_entity)
        api.append(
            ApiRouter(
                entity=to_type_name(auth_entity),
                prefix=config.login_path,
                router_module=f"{package}.auth.routes",
                model_module=f"{package}.models.{module}",
            )
        )

    return RouteTable(ui=ui, api=api)
