"""Role definition id handling.

Plans may name a role by its full definition id, its GUID, or the display
name of a well-known built-in role.
"""

from __future__ import annotations

import re

ROLE_DEFINITION_PREFIX = "/providers/Microsoft.Authorization/roleDefinitions/"

VALID_GUID_PATTERN = r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$"

# Well-known Azure built-in role GUIDs (identical across all tenants)
BUILTIN_ROLES: dict[str, str] = {
    "Owner": "8e3af657-a8ff-443c-a75c-2fe8c4bcb635",
    "Contributor": "b24988ac-6180-42a0-ab88-20f7382dd24c",
    "Reader": "acdd72a7-3385-48ef-bd42-f606fba81ae7",
    "User Access Administrator": "18d7d88d-d35e-4fb5-a5c3-7773c20a72d9",
    "Network Contributor": "4d97b98b-1d4f-4787-a291-c67834d212e7",
    "Security Admin": "fb1c8493-542b-48eb-b624-b4c8fea62acd",
    "Log Analytics Contributor": "92aaf0da-9dab-42b6-94a3-d43ce8d16293",
    "Monitoring Contributor": "749f88d5-cbae-40b8-bcfc-e573ddc772fa",
    "Key Vault Administrator": "00482a5a-887f-4fb3-b363-3b7fe8e74483",
    "Private DNS Zone Contributor": "b12aa53e-6015-4669-85d0-8515ebb3ae7f",
    "Resource Policy Contributor": "36243c78-bf99-498c-9df9-86d9f8d28608",
    "Storage Account Contributor": "17d1049b-9a84-46fb-8f53-869881c3d3ab",
    "Virtual Machine Contributor": "9980e02c-c2be-4d73-94e8-173b1dc7cf3c",
}


def normalize_role_definition_id(role_definition_id: str) -> str:
    """Expand a built-in role name or bare GUID to a role definition id.

    Fully qualified ids are returned unchanged.

    Raises:
        ValueError: If the value is neither a known role, a GUID nor an id.
    """
    if role_definition_id.startswith("/"):
        return role_definition_id
    if role_definition_id in BUILTIN_ROLES:
        return ROLE_DEFINITION_PREFIX + BUILTIN_ROLES[role_definition_id]
    if re.match(VALID_GUID_PATTERN, role_definition_id.lower()):
        return ROLE_DEFINITION_PREFIX + role_definition_id.lower()
    raise ValueError(
        f"Role '{role_definition_id}' is not a recognized built-in role, a GUID "
        f"or a role definition id."
    )


def role_definition_guid(role_definition_id: str) -> str:
    """Last path segment of a role definition id, lowercased."""
    return normalize_role_definition_id(role_definition_id).rstrip("/").rsplit("/", 1)[-1].lower()
