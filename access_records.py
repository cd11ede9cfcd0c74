"""
Access record types for a single Salesforce user and the ingestion helpers
that turn raw provider rows into them.

Provider rows arrive in two historical shapes: the camelCase shape returned by
the user access controller (``canRead``, ``objectName`` ...) and the raw SOQL
shape (``PermissionsRead``, ``SobjectType`` ...). Older exports also used
``readable``/``editable``. Every alias is resolved here, once, so the rest of
the tool reads a single set of attribute names.
"""

from dataclasses import dataclass, field
from typing import Any

DEFAULT_FIELD_SOURCE = 'Profile Access'

_TRUE_STRINGS = {'true', 'yes', '1', 'y'}


def _first_present(row: dict[str, Any], keys: tuple[str, ...], default: Any = None) -> Any:
    """Return the value of the first key in ``keys`` that is present and not None."""

    for key in keys:
        value = row.get(key)
        if value is not None:
            return value
    return default


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return bool(value)


def _as_text(value: Any) -> str:
    if value is None:
        return ''
    return str(value).strip()


@dataclass(frozen=True)
class UserSummary:
    """Identity and org attributes of one user. Replaced wholesale, never patched."""

    id: str
    name: str
    username: str
    email: str = ''
    profile_name: str = ''
    role_name: str = ''
    is_active: bool = True
    last_login_date: str | None = None
    department: str = ''
    manager_name: str = ''

    @property
    def status_text(self) -> str:
        return 'Active' if self.is_active else 'Inactive'

    @property
    def last_login_display(self) -> str:
        return self.last_login_date or 'Never'

    @property
    def initials(self) -> str:
        if not self.name:
            return ''
        return ''.join(part[0] for part in self.name.split() if part)[:2].upper()


@dataclass(frozen=True)
class PermissionSetRecord:
    name: str
    label: str
    description: str = ''
    type: str = ''
    source: str = ''
    is_profile_derived: bool = False


@dataclass(frozen=True)
class ObjectPermissionRecord:
    object_api_name: str
    object_label: str
    can_create: bool = False
    can_read: bool = False
    can_edit: bool = False
    can_delete: bool = False
    can_view_all: bool = False
    can_modify_all: bool = False
    source: str = ''


@dataclass(frozen=True)
class FieldPermissionRecord:
    object_api_name: str
    field_api_name: str
    can_read: bool = False
    can_edit: bool = False
    permission_source: str = DEFAULT_FIELD_SOURCE
    field_label: str = ''


@dataclass(frozen=True)
class TabRecord:
    api_name: str
    label: str
    visibility: str = ''
    is_available: bool = False
    type: str = ''


@dataclass(frozen=True)
class ConnectedAppRecord:
    name: str
    description: str = ''
    access_type: str = ''


@dataclass(frozen=True)
class AvailableObject:
    api_name: str
    label: str


@dataclass(frozen=True)
class Option:
    """A ``{label, value}`` pair offered in a selection menu."""

    label: str
    value: str


@dataclass
class AccessSnapshot:
    """The complete access picture for at most one selected user."""

    user_id: str | None = None
    user: UserSummary | None = None
    permission_sets: list[PermissionSetRecord] = field(default_factory=list)
    object_permissions: list[ObjectPermissionRecord] = field(default_factory=list)
    field_permissions: list[FieldPermissionRecord] = field(default_factory=list)
    object_field_permissions: list[FieldPermissionRecord] = field(default_factory=list)
    tabs: list[TabRecord] = field(default_factory=list)
    connected_apps: list[ConnectedAppRecord] = field(default_factory=list)
    is_ready: bool = False

    @property
    def is_empty(self) -> bool:
        return self.user is None


def user_from_row(row: dict[str, Any]) -> UserSummary:
    last_login = _first_present(row, ('lastLoginDate', 'LastLoginDate'))
    return UserSummary(
        id=_as_text(_first_present(row, ('id', 'Id'))),
        name=_as_text(_first_present(row, ('name', 'Name'))),
        username=_as_text(_first_present(row, ('username', 'Username'))),
        email=_as_text(_first_present(row, ('email', 'Email'))),
        profile_name=_as_text(_first_present(row, ('profileName', 'Profile.Name'))),
        role_name=_as_text(_first_present(row, ('roleName', 'UserRole.Name'))),
        is_active=_as_bool(_first_present(row, ('isActive', 'IsActive'), True)),
        last_login_date=_as_text(last_login) or None,
        department=_as_text(_first_present(row, ('department', 'Department'))),
        manager_name=_as_text(_first_present(row, ('managerName', 'Manager.Name'))),
    )


def permission_set_from_row(row: dict[str, Any]) -> PermissionSetRecord:
    name = _as_text(_first_present(row, ('name', 'Name', 'PermissionSet.Name')))
    return PermissionSetRecord(
        name=name,
        label=_as_text(_first_present(row, ('label', 'Label', 'PermissionSet.Label'), name)),
        description=_as_text(
            _first_present(row, ('description', 'Description', 'PermissionSet.Description'))
        ),
        type=_as_text(_first_present(row, ('type', 'Type'))),
        source=_as_text(_first_present(row, ('source', 'Source'))),
        is_profile_derived=_as_bool(
            _first_present(
                row,
                ('isProfileDerived', 'isOwnedByProfile', 'PermissionSet.IsOwnedByProfile'),
                False,
            )
        ),
    )


def object_permission_from_row(row: dict[str, Any]) -> ObjectPermissionRecord:
    api_name = _as_text(_first_present(row, ('objectApiName', 'objectName', 'SobjectType')))
    return ObjectPermissionRecord(
        object_api_name=api_name,
        object_label=_as_text(_first_present(row, ('objectLabel', 'label'), api_name)) or api_name,
        can_create=_as_bool(_first_present(row, ('canCreate', 'PermissionsCreate'), False)),
        can_read=_as_bool(_first_present(row, ('canRead', 'PermissionsRead'), False)),
        can_edit=_as_bool(_first_present(row, ('canEdit', 'PermissionsEdit'), False)),
        can_delete=_as_bool(_first_present(row, ('canDelete', 'PermissionsDelete'), False)),
        can_view_all=_as_bool(
            _first_present(row, ('canViewAll', 'PermissionsViewAllRecords'), False)
        ),
        can_modify_all=_as_bool(
            _first_present(row, ('canModifyAll', 'PermissionsModifyAllRecords'), False)
        ),
        source=_as_text(_first_present(row, ('source', 'Source'))),
    )


def field_permission_from_row(row: dict[str, Any]) -> FieldPermissionRecord:
    object_api_name = _as_text(
        _first_present(row, ('objectApiName', 'objectName', 'SobjectType'))
    )
    field_api_name = _as_text(
        _first_present(row, ('fieldApiName', 'fieldName', 'Field'))
    )
    # SOQL returns qualified names such as ``Account.Industry``.
    if '.' in field_api_name:
        qualifier, _, short_name = field_api_name.partition('.')
        object_api_name = object_api_name or qualifier
        field_api_name = short_name

    source = _first_present(row, ('permissionSource', 'source'))
    return FieldPermissionRecord(
        object_api_name=object_api_name,
        field_api_name=field_api_name,
        can_read=_as_bool(_first_present(row, ('canRead', 'readable', 'PermissionsRead'), False)),
        can_edit=_as_bool(_first_present(row, ('canEdit', 'editable', 'PermissionsEdit'), False)),
        permission_source=_as_text(source) or DEFAULT_FIELD_SOURCE,
        field_label=_as_text(_first_present(row, ('fieldLabel', 'label'))),
    )


def tab_from_row(row: dict[str, Any]) -> TabRecord:
    api_name = _as_text(_first_present(row, ('apiName', 'tabName', 'Name')))
    visibility = _as_text(_first_present(row, ('visibility', 'Visibility')))
    return TabRecord(
        api_name=api_name,
        label=_as_text(_first_present(row, ('label', 'tabLabel'), api_name)) or api_name,
        visibility=visibility,
        is_available=_as_bool(
            _first_present(row, ('isAvailable',), visibility not in ('', 'None', 'Hidden'))
        ),
        type=_as_text(_first_present(row, ('type', 'tabType'))),
    )


def connected_app_from_row(row: dict[str, Any]) -> ConnectedAppRecord:
    return ConnectedAppRecord(
        name=_as_text(_first_present(row, ('name', 'Name'))),
        description=_as_text(_first_present(row, ('description', 'Description'))),
        access_type=_as_text(_first_present(row, ('accessType', 'AccessType'))),
    )


def available_object_from_row(row: dict[str, Any]) -> AvailableObject:
    api_name = _as_text(_first_present(row, ('apiName', 'value', 'QualifiedApiName')))
    return AvailableObject(
        api_name=api_name,
        label=_as_text(_first_present(row, ('label', 'Label'), api_name)) or api_name,
    )


def option_from_row(row: dict[str, Any]) -> Option:
    value = _as_text(_first_present(row, ('value', 'Id')))
    return Option(
        label=_as_text(_first_present(row, ('label', 'Name'), value)),
        value=value,
    )
