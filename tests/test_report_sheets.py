import datetime

from access_records import (
    AccessSnapshot,
    ConnectedAppRecord,
    FieldPermissionRecord,
    ObjectPermissionRecord,
    PermissionSetRecord,
    TabRecord,
    UserSummary,
)
from report_sheets import (
    FIELD_PERMISSION_HEADER,
    FIELD_PERMISSION_PLACEHOLDER,
    build_sheets,
    field_permission_rows,
    objects_in_field_sheet,
)

EXPORT_DATE = datetime.date(2024, 5, 1)


def _user():
    return UserSummary(
        id='005A',
        name='Ada Lovelace',
        username='ada@example.com',
        email='ada@example.com',
        profile_name='System Administrator',
        is_active=False,
    )


def test_empty_snapshot_still_emits_user_summary_and_field_permissions():
    sheets = build_sheets(AccessSnapshot(), [], EXPORT_DATE)

    assert [sheet.name for sheet in sheets] == ['User Summary', 'Field Permissions']
    assert sheets[0].rows == [['Field', 'Value'], ['No user selected']]
    assert sheets[1].rows == FIELD_PERMISSION_PLACEHOLDER


def test_sheets_are_emitted_in_fixed_order():
    snapshot = AccessSnapshot(
        user_id='005A',
        user=_user(),
        permission_sets=[PermissionSetRecord('Sales_Ops', 'Sales Ops')],
        object_permissions=[ObjectPermissionRecord('Account', 'Account', can_read=True)],
        tabs=[TabRecord('standard-Account', 'Accounts', 'DefaultOn', True, 'Standard')],
    )

    sheets = build_sheets(snapshot, [], EXPORT_DATE)

    assert [sheet.name for sheet in sheets] == [
        'User Summary',
        'Permission Sets',
        'Object Permissions',
        'Field Permissions',
        'Tabs and Apps',
    ]


def test_user_summary_rows():
    snapshot = AccessSnapshot(user_id='005A', user=_user())

    rows = build_sheets(snapshot, [], EXPORT_DATE)[0].rows

    assert ['Status', 'Inactive'] in rows
    assert ['Last Login', 'Never'] in rows
    assert ['Export Date', '2024-05-01'] in rows


def test_field_rows_are_grouped_and_sorted_with_separators():
    records = [
        FieldPermissionRecord('Opportunity', 'Amount', can_read=True),
        FieldPermissionRecord('Account', 'Name', can_read=True, can_edit=False),
        FieldPermissionRecord('Account', 'Industry', can_read=True, can_edit=True, permission_source='Sales Ops'),
        FieldPermissionRecord('', 'Orphan__c'),
    ]

    rows = field_permission_rows(records)

    assert rows == [
        FIELD_PERMISSION_HEADER,
        ['Account'],
        ['Industry', 'Yes', 'Yes', 'Sales Ops'],
        ['Name', 'Yes', 'No', 'Profile Access'],
        [],
        ['Opportunity'],
        ['Amount', 'Yes', 'No', 'Profile Access'],
        [],
        ['Unknown'],
        ['Orphan__c', 'No', 'No', 'Profile Access'],
        [],
    ]


def test_field_rows_fall_back_to_drilled_down_object():
    fallback = [FieldPermissionRecord('Contact', 'Email', can_read=True)]

    rows = field_permission_rows([], fallback)

    assert rows == [FIELD_PERMISSION_HEADER, ['Contact'], ['Email', 'Yes', 'No', 'Profile Access'], []]


def test_build_sheets_uses_object_field_permissions_when_export_set_is_empty():
    snapshot = AccessSnapshot(
        user_id='005A',
        user=_user(),
        object_field_permissions=[FieldPermissionRecord('Contact', 'Email', can_read=True)],
    )

    field_sheet = next(s for s in build_sheets(snapshot, [], EXPORT_DATE) if s.name == 'Field Permissions')

    assert objects_in_field_sheet(field_sheet) == ['Contact']


def test_regrouping_exported_rows_reproduces_object_set():
    records = [
        FieldPermissionRecord(obj, field)
        for obj, field in [
            ('Case', 'Subject'),
            ('Account', 'Name'),
            ('Case', 'Status'),
            ('Lead', 'Company'),
        ]
    ]
    snapshot = AccessSnapshot(user_id='005A', user=_user())

    field_sheet = build_sheets(snapshot, records, EXPORT_DATE)[1]

    assert field_sheet.name == 'Field Permissions'
    assert set(objects_in_field_sheet(field_sheet)) == {r.object_api_name for r in records}


def test_tabs_and_apps_sheet_combines_sections():
    snapshot = AccessSnapshot(
        user_id='005A',
        user=_user(),
        connected_apps=[ConnectedAppRecord('Workbench', 'Granted via Profile', 'Admin Approved')],
    )

    sheet = build_sheets(snapshot, [], EXPORT_DATE)[-1]

    assert sheet.name == 'Tabs and Apps'
    assert sheet.rows == [
        ['App Name', 'Description', 'Access Type'],
        ['Workbench', 'Granted via Profile', 'Admin Approved'],
    ]


def test_object_permission_rows_render_flags():
    snapshot = AccessSnapshot(
        user_id='005A',
        user=_user(),
        object_permissions=[
            ObjectPermissionRecord('Opportunity', 'Opportunity', can_read=True),
            ObjectPermissionRecord('Account', 'Account', True, True, True, True, False, False, 'Profile'),
        ],
    )

    sheet = build_sheets(snapshot, [], EXPORT_DATE)[1]

    assert sheet.name == 'Object Permissions'
    assert sheet.rows[1] == ['Account', 'Account', 'Yes', 'Yes', 'Yes', 'Yes', 'No', 'No', 'Profile']
    assert sheet.rows[2][0] == 'Opportunity'
