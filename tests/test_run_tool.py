import asyncio

import questionary

from access_aggregator import AccessAggregator
from access_records import FieldPermissionRecord, ObjectPermissionRecord
from export_serializer import CsvExportStrategy, ExportSerializer, WorkbookExportStrategy
from fake_provider import FakeProvider, make_user
from notices import Notifier
from run_tool import BACK_TO_USERS, displayed_field_permissions, section_choices, show_section


def _loaded_aggregator(field_permissions):
    provider = FakeProvider()
    provider.add_user(
        make_user('005A', 'Ada Lovelace'),
        object_permissions=[
            ObjectPermissionRecord('Account', 'Account', can_read=True),
            ObjectPermissionRecord('Opportunity', 'Opportunity', can_read=True),
        ],
        field_permissions=field_permissions,
    )
    aggregator = AccessAggregator(provider, notifier=Notifier(echo=False), settle_delay=0)
    asyncio.run(aggregator.select_user('005A'))
    return aggregator


def test_limited_field_permissions_are_shown_until_an_object_is_chosen(capsys):
    aggregator = _loaded_aggregator(
        [
            FieldPermissionRecord('Account', 'Name', can_read=True),
            FieldPermissionRecord('Opportunity', 'Amount', can_read=True),
        ]
    )

    selected, records = displayed_field_permissions(aggregator)
    assert aggregator.selector.selected_object == 'Account'
    assert selected is None
    assert [r.field_api_name for r in records] == ['Name', 'Amount']

    asyncio.run(aggregator.select_object('Opportunity'))
    selected, records = displayed_field_permissions(aggregator)
    assert selected == 'Opportunity'
    assert [r.field_api_name for r in records] == ['Amount']

    show_section(aggregator, 'Field Permissions')
    output = capsys.readouterr().out
    assert 'Object: Opportunity' in output
    assert 'Amount' in output


def test_auto_loaded_object_stands_in_for_missing_limited_set():
    aggregator = _loaded_aggregator([FieldPermissionRecord('Account', 'Name', can_read=True)])
    aggregator.snapshot.field_permissions = []

    selected, records = displayed_field_permissions(aggregator)

    assert selected == 'Account'
    assert [r.field_api_name for r in records] == ['Name']


def test_export_choice_is_labelled_by_strategy(tmp_path):
    notifier = Notifier(echo=False)

    def export_titles(strategy):
        choices = section_choices(ExportSerializer(strategy, tmp_path, notifier))
        assert choices[-1] == BACK_TO_USERS
        return [c.title for c in choices if isinstance(c, questionary.Choice) and c.value == 'export']

    assert export_titles(WorkbookExportStrategy()) == ['Export to Excel']
    assert export_titles(CsvExportStrategy(download_delay=0)) == ['Export to CSV']
