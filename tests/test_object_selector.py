import asyncio

from access_records import AvailableObject, FieldPermissionRecord, ObjectPermissionRecord
from fake_provider import FakeProvider
from object_selector import ObjectSelector, default_object, resolve_object_options


def _obj(api_name, label=None):
    return ObjectPermissionRecord(api_name, label or api_name, can_read=True)


def test_options_are_unique_and_sorted_by_label():
    records = [
        _obj('Opportunity'),
        _obj('Account'),
        _obj('Custom__c', 'banana'),
        _obj('Account', 'Duplicate Label'),
        _obj('Case'),
    ]

    options = resolve_object_options(records, [AvailableObject('Lead', 'Lead')])

    assert [(o.label, o.value) for o in options] == [
        ('Account', 'Account'),
        ('banana', 'Custom__c'),
        ('Case', 'Case'),
        ('Opportunity', 'Opportunity'),
    ]


def test_fallback_keeps_provider_order():
    available = [AvailableObject('Zebra__c', 'Zebra'), AvailableObject('Account', 'Account')]

    options = resolve_object_options([], available)

    assert [o.value for o in options] == ['Zebra__c', 'Account']


def test_default_object_ignores_fallback_list():
    assert default_object([]) is None
    assert default_object([_obj('Opportunity'), _obj('Account')]) == 'Account'


def test_refresh_only_auto_selects_once():
    selector = ObjectSelector(FakeProvider())

    assert selector.refresh([_obj('Case'), _obj('Account')], []) == 'Account'
    assert selector.refresh([_obj('Case'), _obj('Account')], []) is None

    selector.reset()
    selector.choose('Case')
    assert selector.refresh([_obj('Account')], []) is None
    assert selector.selected_object == 'Case'


def test_resolve_field_permissions_returns_new_list():
    provider = FakeProvider()
    provider.field_permissions['005A'] = [FieldPermissionRecord('Account', 'Name', can_read=True)]
    selector = ObjectSelector(provider)

    records = asyncio.run(selector.resolve_field_permissions('005A', 'Account'))
    empty = asyncio.run(selector.resolve_field_permissions('005A', 'Case'))

    assert [r.field_api_name for r in records] == ['Name']
    assert empty == []
