"""
Read-only access data provider.

``AccessDataProvider`` is the contract the aggregator depends on. The concrete
``SalesforceCliProvider`` runs SOQL through ``sf data query --json`` and
normalizes every row with the helpers in ``access_records`` before handing it
back, so callers never see raw Salesforce field names.
"""

import abc
import asyncio
import json
from collections.abc import Callable
from typing import Any

from access_records import (
    AvailableObject,
    ConnectedAppRecord,
    FieldPermissionRecord,
    ObjectPermissionRecord,
    Option,
    PermissionSetRecord,
    TabRecord,
    UserSummary,
    available_object_from_row,
    connected_app_from_row,
    field_permission_from_row,
    object_permission_from_row,
    option_from_row,
    permission_set_from_row,
    tab_from_row,
    user_from_row,
)
from tool_utils import CommandResult, DEFAULT_API_VERSION, run_command

RESOURCE_CEILING_MARKERS = (
    'QUERY_TIMEOUT',
    'EXCEEDED_ID_LIMIT',
    'LIMIT_EXCEEDED',
    'Too many query rows',
    'heap size',
    'CPU time',
)


class ProviderError(Exception):
    """A provider call failed."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ResourceCeilingError(ProviderError):
    """The backend refused the request because a governor limit was reached."""


def classify_provider_error(message: str) -> ProviderError:
    """Return a ``ResourceCeilingError`` for limit failures, else a ``ProviderError``."""

    lowered = message.lower()
    if any(marker.lower() in lowered for marker in RESOURCE_CEILING_MARKERS):
        return ResourceCeilingError(message)
    return ProviderError(message)


class AccessDataProvider(abc.ABC):
    """Read-only queries for users and their effective access."""

    @abc.abstractmethod
    async def list_users(
        self,
        search_term: str = '',
        profile_ids: list[str] | None = None,
        include_inactive: bool = True,
        limit: int = 50,
        offset: int = 0,
    ) -> list[UserSummary]: ...

    @abc.abstractmethod
    async def list_profiles(self) -> list[Option]: ...

    @abc.abstractmethod
    async def get_user_details(self, user_id: str) -> UserSummary: ...

    @abc.abstractmethod
    async def get_user_permission_sets(self, user_id: str) -> list[PermissionSetRecord]: ...

    @abc.abstractmethod
    async def get_user_object_permissions(self, user_id: str) -> list[ObjectPermissionRecord]: ...

    @abc.abstractmethod
    async def get_user_field_permissions_limited(self, user_id: str) -> list[FieldPermissionRecord]: ...

    @abc.abstractmethod
    async def get_user_field_permissions(self, user_id: str) -> list[FieldPermissionRecord]: ...

    @abc.abstractmethod
    async def get_object_field_permissions(
        self, user_id: str, object_api_name: str
    ) -> list[FieldPermissionRecord]: ...

    @abc.abstractmethod
    async def get_available_objects(self) -> list[AvailableObject]: ...

    @abc.abstractmethod
    async def get_user_tabs(self, user_id: str) -> list[TabRecord]: ...

    @abc.abstractmethod
    async def get_user_connected_apps(self, user_id: str) -> list[ConnectedAppRecord]: ...


def soql_literal(value: str) -> str:
    """Quote ``value`` as a SOQL string literal."""

    escaped = value.replace('\\', '\\\\').replace("'", "\\'")
    return f"'{escaped}'"


def flatten_record(record: dict[str, Any], prefix: str = '') -> dict[str, Any]:
    """Flatten relationship sub-records into dotted keys such as ``Profile.Name``."""

    flat: dict[str, Any] = {}
    for key, value in record.items():
        if key == 'attributes':
            continue
        full_key = f"{prefix}{key}"
        if isinstance(value, dict):
            flat.update(flatten_record(value, f"{full_key}."))
        else:
            flat[full_key] = value
    return flat


def _source_label(row: dict[str, Any]) -> str:
    if row.get('Parent.IsOwnedByProfile'):
        return 'Profile'
    return row.get('Parent.Label') or row.get('Parent.Name') or 'Permission Set'


def _join_sources(existing: str, new: str) -> str:
    parts = [part for part in existing.split(', ') if part]
    if new and new not in parts:
        parts.append(new)
    return ', '.join(parts)


def merge_object_permission_rows(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Collapse ObjectPermissions rows to one per object, OR-ing every flag."""

    flags = (
        'PermissionsCreate',
        'PermissionsRead',
        'PermissionsEdit',
        'PermissionsDelete',
        'PermissionsViewAllRecords',
        'PermissionsModifyAllRecords',
    )
    merged: dict[str, dict[str, Any]] = {}
    for row in rows:
        object_name = row.get('SobjectType')
        if not object_name:
            continue
        entry = merged.setdefault(
            object_name,
            {'SobjectType': object_name, 'source': '', **{flag: False for flag in flags}},
        )
        for flag in flags:
            entry[flag] = entry[flag] or bool(row.get(flag))
        entry['source'] = _join_sources(entry['source'], _source_label(row))
    return list(merged.values())


def merge_field_permission_rows(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Collapse FieldPermissions rows to one per field, OR-ing read and edit."""

    merged: dict[str, dict[str, Any]] = {}
    for row in rows:
        field_name = row.get('Field')
        if not field_name:
            continue
        entry = merged.setdefault(
            field_name,
            {
                'SobjectType': row.get('SobjectType'),
                'Field': field_name,
                'PermissionsRead': False,
                'PermissionsEdit': False,
                'permissionSource': '',
            },
        )
        entry['PermissionsRead'] = entry['PermissionsRead'] or bool(row.get('PermissionsRead'))
        entry['PermissionsEdit'] = entry['PermissionsEdit'] or bool(row.get('PermissionsEdit'))
        entry['permissionSource'] = _join_sources(entry['permissionSource'], _source_label(row))
    return list(merged.values())


def _tab_type(tab_name: str) -> str:
    if tab_name.startswith('standard-'):
        return 'Standard'
    return 'Custom'


class SalesforceCliProvider(AccessDataProvider):
    """Access data provider backed by ``sf data query`` against an authenticated alias."""

    def __init__(
        self,
        alias: str,
        api_version: str = DEFAULT_API_VERSION,
        field_permission_limit: int = 2000,
        runner: Callable[..., CommandResult] = run_command,
    ):
        self.alias = alias
        self.api_version = api_version
        self.field_permission_limit = field_permission_limit
        self._runner = runner

    def _query_sync(self, soql: str) -> list[dict[str, Any]]:
        result = self._runner(
            [
                'sf',
                'data',
                'query',
                '--query',
                soql,
                '--target-org',
                self.alias,
                '--api-version',
                self.api_version,
                '--json',
            ],
            capture_output=True,
            check=False,
        )
        output = result.stdout or ''
        try:
            payload = json.loads(output) if output else {}
        except json.JSONDecodeError as exc:
            raise ProviderError(f"Unable to parse query output: {exc}") from exc

        if not result.success or payload.get('status', 0) != 0:
            message = payload.get('message') or f"Query failed with exit code {result.returncode}"
            name = payload.get('name')
            raise classify_provider_error(f"{name}: {message}" if name else message)

        records = payload.get('result', {}).get('records', [])
        return [flatten_record(record) for record in records]

    async def _query(self, soql: str) -> list[dict[str, Any]]:
        return await asyncio.to_thread(self._query_sync, soql)

    def _assigned_parents_clause(self, user_id: str) -> str:
        return (
            "ParentId IN (SELECT PermissionSetId FROM PermissionSetAssignment "
            f"WHERE AssigneeId = {soql_literal(user_id)})"
        )

    async def list_users(
        self,
        search_term: str = '',
        profile_ids: list[str] | None = None,
        include_inactive: bool = True,
        limit: int = 50,
        offset: int = 0,
    ) -> list[UserSummary]:
        conditions = []
        term = search_term.strip()
        if term:
            pattern = soql_literal(f"%{term}%")
            conditions.append(
                f"(Name LIKE {pattern} OR Username LIKE {pattern} OR Email LIKE {pattern})"
            )
        if profile_ids:
            conditions.append(
                f"ProfileId IN ({', '.join(soql_literal(pid) for pid in profile_ids)})"
            )
        if not include_inactive:
            conditions.append("IsActive = true")
        where = f" WHERE {' AND '.join(conditions)}" if conditions else ''
        rows = await self._query(
            "SELECT Id, Name, Username, Email, Profile.Name, UserRole.Name, IsActive, "
            "LastLoginDate, Department, Manager.Name FROM User"
            f"{where} ORDER BY Name LIMIT {int(limit)} OFFSET {int(offset)}"
        )
        return [user_from_row(row) for row in rows]

    async def list_profiles(self) -> list[Option]:
        rows = await self._query("SELECT Id, Name FROM Profile ORDER BY Name")
        return [option_from_row(row) for row in rows]

    async def get_user_details(self, user_id: str) -> UserSummary:
        rows = await self._query(
            "SELECT Id, Name, Username, Email, Profile.Name, UserRole.Name, IsActive, "
            "LastLoginDate, Department, Manager.Name FROM User "
            f"WHERE Id = {soql_literal(user_id)} LIMIT 1"
        )
        if not rows:
            raise ProviderError(f"User {user_id} was not found.")
        return user_from_row(rows[0])

    async def get_user_permission_sets(self, user_id: str) -> list[PermissionSetRecord]:
        rows = await self._query(
            "SELECT PermissionSet.Name, PermissionSet.Label, PermissionSet.Description, "
            "PermissionSet.IsOwnedByProfile, PermissionSet.Profile.Name, PermissionSetGroupId "
            f"FROM PermissionSetAssignment WHERE AssigneeId = {soql_literal(user_id)}"
        )
        records = []
        for row in rows:
            if row.get('PermissionSet.IsOwnedByProfile'):
                profile_name = row.get('PermissionSet.Profile.Name') or row.get('PermissionSet.Label')
                row = {**row, 'label': profile_name, 'type': 'Profile', 'source': 'Profile'}
            elif row.get('PermissionSetGroupId'):
                row = {**row, 'type': 'Permission Set Group', 'source': 'Group Assignment'}
            else:
                row = {**row, 'type': 'Permission Set', 'source': 'Direct Assignment'}
            records.append(permission_set_from_row(row))
        return records

    async def get_user_object_permissions(self, user_id: str) -> list[ObjectPermissionRecord]:
        rows = await self._query(
            "SELECT SobjectType, PermissionsCreate, PermissionsRead, PermissionsEdit, "
            "PermissionsDelete, PermissionsViewAllRecords, PermissionsModifyAllRecords, "
            "Parent.Label, Parent.IsOwnedByProfile FROM ObjectPermissions "
            f"WHERE {self._assigned_parents_clause(user_id)}"
        )
        return [object_permission_from_row(row) for row in merge_object_permission_rows(rows)]

    async def _field_permissions(
        self, user_id: str, object_api_name: str | None = None, limit: int | None = None
    ) -> list[FieldPermissionRecord]:
        soql = (
            "SELECT SobjectType, Field, PermissionsRead, PermissionsEdit, Parent.Label, "
            "Parent.IsOwnedByProfile FROM FieldPermissions "
            f"WHERE {self._assigned_parents_clause(user_id)}"
        )
        if object_api_name:
            soql += f" AND SobjectType = {soql_literal(object_api_name)}"
        soql += " ORDER BY SobjectType, Field"
        if limit:
            soql += f" LIMIT {int(limit)}"
        rows = await self._query(soql)
        return [field_permission_from_row(row) for row in merge_field_permission_rows(rows)]

    async def get_user_field_permissions_limited(self, user_id: str) -> list[FieldPermissionRecord]:
        return await self._field_permissions(user_id, limit=self.field_permission_limit)

    async def get_user_field_permissions(self, user_id: str) -> list[FieldPermissionRecord]:
        return await self._field_permissions(user_id)

    async def get_object_field_permissions(
        self, user_id: str, object_api_name: str
    ) -> list[FieldPermissionRecord]:
        return await self._field_permissions(user_id, object_api_name=object_api_name)

    async def get_available_objects(self) -> list[AvailableObject]:
        rows = await self._query(
            "SELECT QualifiedApiName, Label FROM EntityDefinition "
            "WHERE IsQueryable = true AND IsLayoutable = true ORDER BY Label"
        )
        return [available_object_from_row(row) for row in rows]

    async def get_user_tabs(self, user_id: str) -> list[TabRecord]:
        rows = await self._query(
            "SELECT Name, Visibility, Parent.Label, Parent.IsOwnedByProfile "
            f"FROM PermissionSetTabSetting WHERE {self._assigned_parents_clause(user_id)}"
        )
        tabs: dict[str, dict[str, Any]] = {}
        for row in rows:
            name = row.get('Name')
            if not name:
                continue
            # DefaultOn wins over DefaultOff when several sources grant the tab.
            if name in tabs and tabs[name]['visibility'] == 'DefaultOn':
                continue
            tabs[name] = {
                'apiName': name,
                'visibility': row.get('Visibility') or '',
                'type': _tab_type(name),
            }
        return [tab_from_row(row) for row in tabs.values()]

    async def get_user_connected_apps(self, user_id: str) -> list[ConnectedAppRecord]:
        access_rows = await self._query(
            "SELECT SetupEntityId, Parent.Label, Parent.IsOwnedByProfile FROM SetupEntityAccess "
            f"WHERE SetupEntityType = 'ConnectedApplication' AND {self._assigned_parents_clause(user_id)}"
        )
        sources: dict[str, str] = {}
        for row in access_rows:
            app_id = row.get('SetupEntityId')
            if app_id:
                sources[app_id] = _join_sources(sources.get(app_id, ''), _source_label(row))
        if not sources:
            return []

        app_rows = await self._query(
            "SELECT Id, Name FROM ConnectedApplication WHERE Id IN "
            f"({', '.join(soql_literal(app_id) for app_id in sources)}) ORDER BY Name"
        )
        return [
            connected_app_from_row(
                {
                    'name': row.get('Name'),
                    'description': f"Granted via {sources.get(row.get('Id'), '')}",
                    'accessType': 'Admin Approved',
                }
            )
            for row in app_rows
        ]
