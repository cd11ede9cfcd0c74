"""Command-line entry point for browsing Salesforce users and exporting their access."""

import asyncio
import sys
from pathlib import Path

import click
import questionary

from access_aggregator import AccessAggregator
from access_provider import SalesforceCliProvider
from access_records import AccessSnapshot, FieldPermissionRecord, UserSummary
from export_serializer import ExportSerializer, select_export_strategy
from notices import Notifier
from report_sheets import yes_no
from tool_utils import (
    ConfigSettings,
    EXPORT_FORMATS,
    NavigationInterrupt,
    ensure_authenticated,
    ensure_config,
    prompt_with_navigation,
    read_config,
)

SECTION_CHOICES = [
    'User Permissions',
    'Object Permissions',
    'Field Permissions',
    'Choose Object for Field Permissions',
    'Tabs',
    'Connected Apps',
]
EXPORT_LABELS = {'xlsx': 'Export to Excel', 'csv': 'Export to CSV'}
BACK_TO_USERS = 'Back to Users'


def section_choices(serializer: ExportSerializer) -> list:
    export_label = EXPORT_LABELS.get(serializer.strategy.name, 'Export')
    return [
        *SECTION_CHOICES,
        questionary.Choice(export_label, value='export'),
        BACK_TO_USERS,
    ]


def print_table(headers: list[str], rows: list[list[str]]) -> None:
    """Echo rows as fixed-width columns sized to their content."""

    widths = [len(header) for header in headers]
    for row in rows:
        for idx, value in enumerate(row):
            widths[idx] = min(max(widths[idx], len(str(value))), 50)

    header_line = '  '.join(f"{header:<{widths[idx]}}" for idx, header in enumerate(headers))
    click.echo(click.style(header_line, bold=True))
    click.echo('-' * len(header_line))
    for row in rows:
        click.echo('  '.join(f"{str(value)[:50]:<{widths[idx]}}" for idx, value in enumerate(row)))


def _format_user_header(user: UserSummary) -> list[str]:
    status_colour = 'green' if user.is_active else 'red'
    return [
        click.style(f"[{user.initials}] {user.name} ({user.username})", fg='cyan', bold=True),
        f"Email: {user.email}",
        f"Profile: {user.profile_name}   Role: {user.role_name or '-'}",
        f"Status: {click.style(user.status_text, fg=status_colour)}   Last Login: {user.last_login_display}",
        f"Department: {user.department or '-'}   Manager: {user.manager_name or '-'}",
    ]


def displayed_field_permissions(aggregator: AccessAggregator) -> tuple[str | None, list[FieldPermissionRecord]]:
    """
    The field permissions shown on screen and the object they belong to.

    The size-limited set is shown until the user picks an object. The
    auto-loaded object's fields stand in only when that set is empty.
    """

    selector = aggregator.selector
    snapshot = aggregator.snapshot
    if selector.chosen_by_user:
        return selector.selected_object, snapshot.object_field_permissions
    if snapshot.field_permissions:
        return None, snapshot.field_permissions
    if selector.selected_object:
        return selector.selected_object, snapshot.object_field_permissions
    return None, []


def show_section(aggregator: AccessAggregator, section: str) -> None:
    snapshot: AccessSnapshot = aggregator.snapshot

    if section == 'User Permissions':
        if not snapshot.permission_sets:
            click.echo("No permission sets assigned.")
            return
        print_table(
            ['Label', 'API Name', 'Type', 'Source'],
            [[ps.label, ps.name, ps.type, ps.source] for ps in snapshot.permission_sets],
        )
    elif section == 'Object Permissions':
        if not snapshot.object_permissions:
            click.echo("No object permissions found.")
            return
        print_table(
            ['Object', 'API Name', 'Create', 'Read', 'Edit', 'Delete', 'View All', 'Modify All'],
            [
                [
                    op.object_label,
                    op.object_api_name,
                    yes_no(op.can_create),
                    yes_no(op.can_read),
                    yes_no(op.can_edit),
                    yes_no(op.can_delete),
                    yes_no(op.can_view_all),
                    yes_no(op.can_modify_all),
                ]
                for op in snapshot.object_permissions
            ],
        )
    elif section == 'Field Permissions':
        selected, records = displayed_field_permissions(aggregator)
        if selected:
            click.echo(click.style(f"Object: {selected}", fg='cyan'))
        if not records:
            click.echo("No field permissions to display.")
            return
        print_table(
            ['Object', 'Field', 'Read', 'Edit', 'Source'],
            [
                [fp.object_api_name, fp.field_api_name, yes_no(fp.can_read), yes_no(fp.can_edit), fp.permission_source]
                for fp in records
            ],
        )
    elif section == 'Tabs':
        if not snapshot.tabs:
            click.echo("No tab settings found.")
            return
        print_table(
            ['Tab Label', 'API Name', 'Visibility', 'Available', 'Type'],
            [[t.label, t.api_name, t.visibility, yes_no(t.is_available), t.type] for t in snapshot.tabs],
        )
    elif section == 'Connected Apps':
        if not snapshot.connected_apps:
            click.echo("No connected apps found.")
            return
        print_table(
            ['App Name', 'Description', 'Access Type'],
            [[app.name, app.description, app.access_type] for app in snapshot.connected_apps],
        )


def choose_object(aggregator: AccessAggregator) -> None:
    options = aggregator.selector.options
    if not options:
        click.echo(click.style("No objects available for this user.", fg='yellow'))
        return
    selected = aggregator.selector.selected_object
    choice = prompt_with_navigation(
        questionary.select(
            "Select an object:",
            choices=[questionary.Choice(f"{o.label} ({o.value})", value=o.value) for o in options],
            default=selected if any(o.value == selected for o in options) else None,
        )
    )
    records = asyncio.run(aggregator.select_object(choice))
    click.echo(f"Loaded {len(records)} field permission(s) for {choice}.")


def show_user_access(aggregator: AccessAggregator, serializer: ExportSerializer, user_id: str) -> None:
    """Load one user's access and let the admin browse and export it."""

    click.echo("\nLoading user access...")
    snapshot = asyncio.run(aggregator.select_user(user_id))
    if snapshot is None:
        return

    for line in _format_user_header(snapshot.user):
        click.echo(line)

    while True:
        try:
            section = prompt_with_navigation(
                questionary.select("Choose a section:", choices=section_choices(serializer))
            )
        except NavigationInterrupt:
            section = BACK_TO_USERS

        if section == BACK_TO_USERS:
            aggregator.back_to_users()
            return
        if section == 'export':
            asyncio.run(aggregator.export_report(serializer))
        elif section == 'Choose Object for Field Permissions':
            try:
                choose_object(aggregator)
            except NavigationInterrupt:
                pass
        else:
            show_section(aggregator, section)
        click.echo()


def _user_menu_choices(aggregator: AccessAggregator) -> list:
    choices = [
        questionary.Choice(
            f"{user.name:<30} {user.username:<40} {user.profile_name:<25} {user.status_text}",
            value=('user', user.id),
        )
        for user in aggregator.users
    ]
    choices.append(questionary.Separator())
    choices.extend(
        [
            questionary.Choice("Search users", value=('search', None)),
            questionary.Choice("Filter by profile", value=('profiles', None)),
            questionary.Choice(
                f"{'Hide' if aggregator.include_inactive else 'Show'} inactive users",
                value=('inactive', None),
            ),
            questionary.Choice("Next page", value=('next', None)),
        ]
    )
    if aggregator.current_page > 1:
        choices.append(questionary.Choice("Previous page", value=('previous', None)))
    choices.append(questionary.Choice("Exit", value=('exit', None)))
    return choices


def browse_users(aggregator: AccessAggregator, serializer: ExportSerializer) -> None:
    asyncio.run(aggregator.load_profiles())
    asyncio.run(aggregator.load_users())

    while True:
        click.echo(click.style(f"\nUsers (page {aggregator.current_page}) - {aggregator.page_info}", fg='cyan'))
        try:
            action, value = prompt_with_navigation(
                questionary.select("Select a user or an action:", choices=_user_menu_choices(aggregator))
            )
        except NavigationInterrupt:
            click.echo("Goodbye!")
            return

        try:
            if action == 'exit':
                click.echo("Goodbye!")
                return
            if action == 'user':
                show_user_access(aggregator, serializer, value)
            elif action == 'search':
                term = prompt_with_navigation(
                    questionary.text("Search by name, username or email:", default=aggregator.search_term)
                )
                asyncio.run(aggregator.search(term.strip()))
            elif action == 'profiles':
                selected = prompt_with_navigation(
                    questionary.checkbox(
                        "Select profiles (none selected shows all):",
                        choices=[
                            questionary.Choice(p.label, value=p.value, checked=p.value in aggregator.selected_profiles)
                            for p in aggregator.profiles
                            if p.value
                        ],
                    )
                )
                asyncio.run(aggregator.filter_profiles(selected))
            elif action == 'inactive':
                asyncio.run(aggregator.set_include_inactive(not aggregator.include_inactive))
            elif action == 'next':
                asyncio.run(aggregator.next_page())
            elif action == 'previous':
                asyncio.run(aggregator.previous_page())
        except NavigationInterrupt:
            click.echo("\nReturning to the user list...\n")


def build_application(config: ConfigSettings, notifier: Notifier) -> tuple[AccessAggregator, ExportSerializer]:
    """Wire the provider, aggregator and export serializer from configuration."""

    provider = SalesforceCliProvider(
        config.persistent_alias,
        api_version=config.api_version,
        field_permission_limit=config.field_permission_limit,
    )
    aggregator = AccessAggregator(
        provider,
        notifier=notifier,
        settle_delay=config.settle_delay_seconds,
        page_size=config.page_size,
    )
    strategy = select_export_strategy(
        config.export_format, notifier, download_delay=config.download_delay_seconds
    )
    serializer = ExportSerializer(strategy, config.export_dir, notifier)
    return aggregator, serializer


@click.command()
@click.option('--config', 'config_file', default=None, help='Path to config.ini (defaults to the tool directory).')
@click.option(
    '--export-format',
    type=click.Choice(EXPORT_FORMATS),
    default=None,
    help='Override ToolOptions.export_format for this session.',
)
def main(config_file, export_format):
    """Salesforce User Access Summary."""
    click.echo(click.style("=== Salesforce User Access Summary ===", bold=True, fg='cyan'))

    config_path = Path(config_file) if config_file else Path(__file__).parent / 'config.ini'
    ensure_config(config_path)
    config = read_config(config_path)
    if export_format:
        config.export_format = export_format

    click.echo(click.style(f"Active org: {config.active_org_name} ({config.persistent_alias})", fg='cyan'))
    if not ensure_authenticated(config.target_org_url, config.persistent_alias):
        click.echo(click.style("Authentication failed. Exiting.", fg='red'))
        sys.exit(1)

    aggregator, serializer = build_application(config, Notifier())
    browse_users(aggregator, serializer)


if __name__ == '__main__':
    main()
