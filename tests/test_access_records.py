from access_records import (
    DEFAULT_FIELD_SOURCE,
    UserSummary,
    field_permission_from_row,
    object_permission_from_row,
    permission_set_from_row,
    tab_from_row,
    user_from_row,
)


def test_field_permission_accepts_both_flag_names():
    current = field_permission_from_row(
        {'objectApiName': 'Account', 'fieldApiName': 'Name', 'canRead': True, 'canEdit': False}
    )
    legacy = field_permission_from_row(
        {'objectName': 'Account', 'fieldName': 'Name', 'readable': 'true', 'editable': 'false'}
    )

    assert current == legacy
    assert current.can_read is True
    assert current.can_edit is False


def test_field_permission_source_fallback_chain():
    assert field_permission_from_row({'permissionSource': 'PS', 'source': 'Other'}).permission_source == 'PS'
    assert field_permission_from_row({'source': 'Other'}).permission_source == 'Other'
    assert field_permission_from_row({}).permission_source == DEFAULT_FIELD_SOURCE


def test_field_permission_splits_qualified_soql_field():
    record = field_permission_from_row(
        {'Field': 'Account.Industry', 'PermissionsRead': True, 'PermissionsEdit': True}
    )

    assert record.object_api_name == 'Account'
    assert record.field_api_name == 'Industry'
    assert record.can_edit is True


def test_user_from_soql_row():
    user = user_from_row(
        {
            'Id': '005A',
            'Name': 'Ada Lovelace',
            'Username': 'ada@example.com',
            'Profile.Name': 'System Administrator',
            'IsActive': False,
            'LastLoginDate': None,
            'Manager.Name': 'Charles Babbage',
        }
    )

    assert user.profile_name == 'System Administrator'
    assert user.manager_name == 'Charles Babbage'
    assert user.status_text == 'Inactive'
    assert user.last_login_display == 'Never'
    assert user.initials == 'AL'


def test_user_initials_handle_single_and_empty_names():
    assert UserSummary('1', 'cher', 'c').initials == 'C'
    assert UserSummary('1', 'Jean Luc Picard', 'j').initials == 'JL'
    assert UserSummary('1', '', 'x').initials == ''


def test_object_permission_label_defaults_to_api_name():
    record = object_permission_from_row({'SobjectType': 'Invoice__c', 'PermissionsRead': True})

    assert record.object_label == 'Invoice__c'
    assert record.can_read is True
    assert record.can_modify_all is False


def test_permission_set_profile_flag():
    record = permission_set_from_row(
        {'PermissionSet.Name': 'X00e', 'label': 'Standard User', 'PermissionSet.IsOwnedByProfile': True}
    )

    assert record.is_profile_derived is True
    assert record.label == 'Standard User'


def test_tab_availability_from_visibility():
    assert tab_from_row({'Name': 'standard-Account', 'Visibility': 'DefaultOn'}).is_available is True
    assert tab_from_row({'Name': 'Hidden__tab', 'Visibility': 'Hidden'}).is_available is False
    assert tab_from_row({'apiName': 'x', 'isAvailable': False, 'visibility': 'DefaultOn'}).is_available is False
