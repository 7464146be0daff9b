"""
core/lookups.py -- Immutable enum <-> external id tables.

Navigation nodes and user actions are seeded reference rows whose row ids
(UUID strings) are stable across deployments. Authorization checks refer to
them by enum member (NavigationMenu.LICENSE, UserAction.VIEW) and translate to
the row id through a LookupTable.

Tables are plain immutable values: build_lookup_tables() is called once in the
API lifespan and the result is stored on app.state and handed to whatever
needs it. There is no module-level registry and nothing to initialize twice.

Layer rule: core/ is the kernel. No imports from api/ or auth/.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Generic, TypeVar


class UserAction(str, Enum):
    ADD = "Add"
    VIEW = "View"
    EDIT = "Edit"
    DELETE = "Delete"


class NavigationMenu(str, Enum):
    ORGANIZATION = "Organization"
    PROJECT = "Project"
    ALL_CLIENTS = "All Clients"
    SUMMARY = "Summary"
    MEMBERS = "Members"
    ROLES = "Roles"
    CONNECTORS = "Connectors"
    CONFIGURATIONS = "Configurations"
    CONNECTIONS = "Connections"
    DOCUMENTS = "Documents"
    QUESTIONNAIRE_BUILDER = "Questionnaire Builder"
    INSIGHTS_TEMPLATE = "Insights Template"
    USERS = "Users"
    LICENSE = "License"
    ALL_PROJECTS = "All Projects"
    PROJECT_SUMMARY = "Project Summary"
    WORKFLOW_SET_UP = "Workflow Set Up"
    INSIGHTS = "Insights"
    ALERTS_DASHBOARD = "Alerts Dashboard"
    ALERTS = "Alerts"
    PROJECT_USERS = "Project Users"
    PROJECT_ROLES = "Project Roles"
    VISUALISATIONS = "Visualisations"
    ENTITY_VIEW = "Entity View"
    TRANSACTION_VIEW = "Transaction View"
    SCENARIO_MANAGER = "Scenario Manager"
    SIMILAR_TRANSACTION = "Similar Transaction"
    PROJECT_DASHBOARD = "Project Dashboard"


# Seeded row ids. These must match the reference rows in the database.
USER_ACTION_ROW_IDS: dict[UserAction, str] = {
    UserAction.ADD: "71677ac1-f65e-4a3a-b5ba-30c670adaf72",
    UserAction.VIEW: "e2c69446-bce9-4649-9883-b7cf5dc49ed4",
    UserAction.EDIT: "3eef0b38-5e82-48ae-8d5f-db30512fa788",
    UserAction.DELETE: "6a567a5c-f8e3-4c30-b2d9-f3bdd59478e3",
}

NAVIGATION_ROW_IDS: dict[NavigationMenu, str] = {
    NavigationMenu.ORGANIZATION: "2b7d80f8-9163-4cf6-b03b-9132c49e1b34",
    NavigationMenu.PROJECT: "b8e3d6cb-b6f0-4023-8e7b-4bcea6894c03",
    NavigationMenu.ALL_CLIENTS: "7ffaa26e-0e7e-41f4-8057-2cf4d1951fed",
    NavigationMenu.SUMMARY: "9ec0d091-74f6-44fa-aaae-27d303a71cf6",
    NavigationMenu.MEMBERS: "9ec25f34-b66c-4e86-a340-014f6f511990",
    NavigationMenu.ROLES: "bdcf0a83-8c85-4fd0-a21f-15bcc28de782",
    NavigationMenu.CONNECTORS: "1d1c8349-b551-4a34-8468-e80015425d53",
    NavigationMenu.CONFIGURATIONS: "d17e90f1-d83d-479e-9a98-a0da491924ba",
    NavigationMenu.CONNECTIONS: "bc22b3f0-c8fa-4917-a743-9ca61a32410c",
    NavigationMenu.DOCUMENTS: "cf8324f3-d559-470f-828a-ec391b593bcf",
    NavigationMenu.QUESTIONNAIRE_BUILDER: "e7e8b5f4-b732-415c-a8ff-cdc116143b96",
    NavigationMenu.INSIGHTS_TEMPLATE: "e8dcf843-425f-4959-9ea6-1dbf63af5731",
    NavigationMenu.USERS: "97c2bfe9-0c66-48c8-9591-1769dcc7a068",
    NavigationMenu.LICENSE: "fe0b6d72-d3d7-4a46-b8e9-f3b187463cf4",
    NavigationMenu.ALL_PROJECTS: "1c4f654b-e3e7-43db-a0b0-7d6731b933bd",
    NavigationMenu.PROJECT_SUMMARY: "aff447ab-3180-4850-8675-4498a2b8b1e2",
    NavigationMenu.WORKFLOW_SET_UP: "5d534ca5-e26f-45d0-a8b9-1cfda53abcc0",
    NavigationMenu.INSIGHTS: "6bddb546-bfcb-4217-9f5c-bc535ef233dd",
    NavigationMenu.ALERTS_DASHBOARD: "0d2e6d9b-ca51-410c-9775-ea3583872984",
    NavigationMenu.ALERTS: "a5147898-183e-4ec7-a0a1-d97232efee73",
    NavigationMenu.PROJECT_USERS: "0dbc12a1-7fbf-442c-8583-9f491c8b802e",
    NavigationMenu.PROJECT_ROLES: "9a022cd0-82bd-4855-b25a-e72523d53d3f",
    NavigationMenu.PROJECT_DASHBOARD: "11ad33e4-f72d-4a1d-a468-b252d6864498",
    NavigationMenu.VISUALISATIONS: "a814b4ce-bf05-4b13-a728-90ab9a4a0926",
    NavigationMenu.ENTITY_VIEW: "5b30432e-3307-46e9-afde-0e16872624bf",
    NavigationMenu.TRANSACTION_VIEW: "7487e683-7781-456e-92d0-5e6d7b38f57d",
    NavigationMenu.SCENARIO_MANAGER: "32873795-27f4-4fe3-969e-c852ba7d19f4",
    NavigationMenu.SIMILAR_TRANSACTION: "5cde8207-3591-4311-a131-642801ff138e",
}

E = TypeVar("E", bound=Enum)


class LookupTable(Generic[E]):
    """Read-only two-way mapping between enum members and row ids.

    Row ids are compared case-insensitively; they are stored lowercased.
    Duplicate row ids are rejected at construction.
    """

    def __init__(self, row_ids: Mapping[E, str]) -> None:
        by_member = {member: row_id.lower() for member, row_id in row_ids.items()}
        by_row_id: dict[str, E] = {}
        for member, row_id in by_member.items():
            if row_id in by_row_id:
                raise ValueError(f"Row id {row_id} is mapped to both {by_row_id[row_id]} and {member}.")
            by_row_id[row_id] = member
        self._by_member: Mapping[E, str] = MappingProxyType(by_member)
        self._by_row_id: Mapping[str, E] = MappingProxyType(by_row_id)

    def row_id(self, member: E) -> str:
        """Return the row id for member. Raises KeyError if unmapped."""
        return self._by_member[member]

    def member(self, row_id: str) -> E | None:
        """Return the enum member for row_id, or None if unknown."""
        return self._by_row_id.get(row_id.lower())

    def __len__(self) -> int:
        return len(self._by_member)


@dataclass(frozen=True)
class LookupTables:
    navigations: LookupTable[NavigationMenu]
    actions: LookupTable[UserAction]


def build_lookup_tables(
    navigation_row_ids: Mapping[NavigationMenu, str] = NAVIGATION_ROW_IDS,
    action_row_ids: Mapping[UserAction, str] = USER_ACTION_ROW_IDS,
) -> LookupTables:
    """Build the lookup tables once at startup."""
    return LookupTables(
        navigations=LookupTable(navigation_row_ids),
        actions=LookupTable(action_row_ids),
    )
