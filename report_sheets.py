"""Turn an access snapshot into the ordered, named sheets of an access report."""

import datetime
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any

from access_records import (
    DEFAULT_FIELD_SOURCE,
    AccessSnapshot,
    FieldPermissionRecord,
)

USER_SUMMARY = 'User Summary'
PERMISSION_SETS = 'Permission Sets'
OBJECT_PERMISSIONS = 'Object Permissions'
FIELD_PERMISSIONS = 'Field Permissions'
TABS_AND_APPS = 'Tabs and Apps'

SHEET_ORDER = (USER_SUMMARY, PERMISSION_SETS, OBJECT_PERMISSIONS, FIELD_PERMISSIONS, TABS_AND_APPS)
ALWAYS_EMITTED = {USER_SUMMARY, FIELD_PERMISSIONS}

UNKNOWN_OBJECT = 'Unknown'
FIELD_PERMISSION_HEADER = ['Object / Field', 'Read', 'Edit', 'Source']
FIELD_PERMISSION_PLACEHOLDER = [
    ['No field permissions available'],
    ['Field permissions were not loaded for this user or none are granted.'],
]


@dataclass
class Sheet:
    name: str
    rows: list[list[Any]] = field(default_factory=list)


def yes_no(value: bool) -> str:
    return 'Yes' if value else 'No'


def _user_summary_rows(snapshot: AccessSnapshot, export_date: datetime.date) -> list[list[Any]]:
    rows: list[list[Any]] = [['Field', 'Value']]
    user = snapshot.user
    if user is None:
        rows.append(['No user selected'])
        return rows
    rows.extend(
        [
            ['Name', user.name],
            ['Username', user.username],
            ['Email', user.email],
            ['Profile', user.profile_name],
            ['Role', user.role_name],
            ['Status', user.status_text],
            ['Last Login', user.last_login_display],
            ['Department', user.department],
            ['Manager', user.manager_name],
            ['Export Date', export_date.isoformat()],
        ]
    )
    return rows


def _permission_set_rows(snapshot: AccessSnapshot) -> list[list[Any]]:
    if not snapshot.permission_sets:
        return []
    rows: list[list[Any]] = [['Label', 'API Name', 'Description', 'Type', 'Source', 'Profile Derived']]
    for record in sorted(snapshot.permission_sets, key=lambda r: (r.label.casefold(), r.name)):
        rows.append(
            [
                record.label,
                record.name,
                record.description,
                record.type,
                record.source,
                yes_no(record.is_profile_derived),
            ]
        )
    return rows


def _object_permission_rows(snapshot: AccessSnapshot) -> list[list[Any]]:
    if not snapshot.object_permissions:
        return []
    rows: list[list[Any]] = [
        ['Object', 'API Name', 'Create', 'Read', 'Edit', 'Delete', 'View All', 'Modify All', 'Source']
    ]
    ordered = sorted(
        snapshot.object_permissions,
        key=lambda r: (r.object_label.casefold(), r.object_api_name),
    )
    for record in ordered:
        rows.append(
            [
                record.object_label,
                record.object_api_name,
                yes_no(record.can_create),
                yes_no(record.can_read),
                yes_no(record.can_edit),
                yes_no(record.can_delete),
                yes_no(record.can_view_all),
                yes_no(record.can_modify_all),
                record.source,
            ]
        )
    return rows


def group_field_permissions(
    records: list[FieldPermissionRecord],
) -> dict[str, list[FieldPermissionRecord]]:
    """Group by object API name with sorted keys; fields sorted within each group."""

    groups: dict[str, list[FieldPermissionRecord]] = defaultdict(list)
    for record in records:
        groups[record.object_api_name or UNKNOWN_OBJECT].append(record)
    return {
        object_name: sorted(groups[object_name], key=lambda r: r.field_api_name)
        for object_name in sorted(groups)
    }


def field_permission_rows(
    records: list[FieldPermissionRecord],
    fallback_records: list[FieldPermissionRecord] | None = None,
) -> list[list[Any]]:
    """
    Rows for the Field Permissions sheet.

    ``records`` is the all-objects set collected for export. When it is empty
    the currently drilled-down object's ``fallback_records`` are rendered
    instead, and when both are empty a placeholder explains the gap.
    """

    source_records = records or fallback_records or []
    if not source_records:
        return [list(row) for row in FIELD_PERMISSION_PLACEHOLDER]

    rows: list[list[Any]] = [list(FIELD_PERMISSION_HEADER)]
    for object_name, group in group_field_permissions(source_records).items():
        rows.append([object_name])
        for record in group:
            rows.append(
                [
                    record.field_api_name,
                    yes_no(record.can_read),
                    yes_no(record.can_edit),
                    record.permission_source or DEFAULT_FIELD_SOURCE,
                ]
            )
        rows.append([])
    return rows


def _tabs_and_apps_rows(snapshot: AccessSnapshot) -> list[list[Any]]:
    rows: list[list[Any]] = []
    if snapshot.tabs:
        rows.append(['Tab Label', 'API Name', 'Visibility', 'Available', 'Type'])
        for tab in sorted(snapshot.tabs, key=lambda t: (t.label.casefold(), t.api_name)):
            rows.append([tab.label, tab.api_name, tab.visibility, yes_no(tab.is_available), tab.type])
    if snapshot.connected_apps:
        if rows:
            rows.append([])
        rows.append(['App Name', 'Description', 'Access Type'])
        for app in sorted(snapshot.connected_apps, key=lambda a: a.name.casefold()):
            rows.append([app.name, app.description, app.access_type])
    return rows


def build_sheets(
    snapshot: AccessSnapshot,
    export_field_permissions: list[FieldPermissionRecord],
    export_date: datetime.date | None = None,
) -> list[Sheet]:
    """Build report sheets in fixed order, skipping empty optional sections."""

    export_date = export_date or datetime.date.today()
    sections = {
        USER_SUMMARY: _user_summary_rows(snapshot, export_date),
        PERMISSION_SETS: _permission_set_rows(snapshot),
        OBJECT_PERMISSIONS: _object_permission_rows(snapshot),
        FIELD_PERMISSIONS: field_permission_rows(
            export_field_permissions, snapshot.object_field_permissions
        ),
        TABS_AND_APPS: _tabs_and_apps_rows(snapshot),
    }
    return [
        Sheet(name, sections[name])
        for name in SHEET_ORDER
        if sections[name] or name in ALWAYS_EMITTED
    ]


def objects_in_field_sheet(sheet: Sheet) -> list[str]:
    """Object names named by the group header rows of a Field Permissions sheet."""

    if not sheet.rows or sheet.rows[0] != FIELD_PERMISSION_HEADER:
        return []
    return [row[0] for row in sheet.rows[1:] if len(row) == 1]
