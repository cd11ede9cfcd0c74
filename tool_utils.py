"""Utility helpers for configuration, Salesforce CLI calls and prompt navigation."""

import configparser
import datetime
import json
import os
import subprocess
from dataclasses import dataclass
from pathlib import Path

import click
import questionary

DEFAULT_API_VERSION = '60.0'
EXPORT_FORMATS = ('auto', 'xlsx', 'csv')


class NavigationInterrupt(Exception):
    """Raised when the user requests to navigate back using Ctrl+C."""


def prompt_with_navigation(prompt):
    """Execute a questionary prompt and translate cancellations into navigation."""

    try:
        answer = prompt.ask()
    except KeyboardInterrupt:
        raise NavigationInterrupt() from None

    if answer is None:
        raise NavigationInterrupt()

    return answer


@dataclass
class CommandResult:
    """Outcome of executing a subprocess command."""

    success: bool
    returncode: int | None
    stdout: str | None
    duration_seconds: float


@dataclass
class OrgConfig:
    """Configuration describing a single Salesforce org target."""

    name: str
    target_org_url: str
    persistent_alias: str


@dataclass
class ConfigSettings:
    """Validated configuration values for org and tool settings."""

    target_org_url: str
    persistent_alias: str
    api_version: str
    active_org_name: str
    available_orgs: list[OrgConfig]
    page_size: int = 50
    field_permission_limit: int = 2000
    settle_delay_seconds: float = 0.5
    download_delay_seconds: float = 0.5
    export_dir: Path = Path('exports')
    export_format: str = 'auto'


def run_command(
    command: list[str],
    cwd: Path = None,
    capture_output: bool = False,
    check: bool = True,
) -> CommandResult:
    """Run a command with structured status reporting."""

    command_str = subprocess.list2cmdline(command)
    # The sf executable is a .cmd shim on Windows and needs the shell there.
    use_shell = os.name == 'nt'
    args = command_str if use_shell else command
    start = datetime.datetime.now()
    if not capture_output:
        click.echo(
            click.style(
                f"\n[{start:%H:%M:%S}] > Executing: {command_str}",
                fg='yellow',
            )
        )

    try:
        if capture_output:
            result = subprocess.run(
                args,
                capture_output=True,
                text=True,
                encoding='utf-8',
                errors='replace',
                shell=use_shell,
                check=check,
                cwd=cwd,
            )
            duration = (datetime.datetime.now() - start).total_seconds()
            return CommandResult(result.returncode == 0, result.returncode, result.stdout, duration)

        process = subprocess.Popen(
            args,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            encoding='utf-8',
            errors='replace',
            cwd=cwd,
            shell=use_shell,
        )
        stdout_lines: list[str] = []
        for line in iter(process.stdout.readline, ''):
            # Progress output redraws with carriage returns; keep lines appended instead.
            sanitized_line = line.replace('\r', '')
            stdout_lines.append(sanitized_line)
            print(sanitized_line, end='')
        process.wait()
        duration = (datetime.datetime.now() - start).total_seconds()
        if process.returncode != 0 and check:
            raise subprocess.CalledProcessError(process.returncode, command)

        success = process.returncode == 0
        click.echo(
            click.style(f"✓ Command successful. (took {duration:.2f}s)", fg='green')
            if success
            else click.style(
                f"✗ Command returned code {process.returncode} (took {duration:.2f}s)",
                fg='red',
            )
        )
        return CommandResult(success, process.returncode, ''.join(stdout_lines), duration)

    except subprocess.CalledProcessError as e:
        duration = (datetime.datetime.now() - start).total_seconds()
        if not capture_output:
            click.echo(
                click.style(
                    f"✗ Command failed after {duration:.2f}s (exit {e.returncode}).",
                    fg='red',
                )
            )
        return CommandResult(False, e.returncode, e.stdout, duration)
    except OSError as e:
        duration = (datetime.datetime.now() - start).total_seconds()
        if not capture_output:
            click.echo(
                click.style(
                    f"✗ Unable to start command after {duration:.2f}s: {e}",
                    fg='red',
                )
            )
        return CommandResult(False, None, None, duration)


def _get_int(parser: configparser.ConfigParser, option: str, fallback: int) -> int:
    try:
        value = parser.getint('ToolOptions', option, fallback=fallback)
    except ValueError:
        raise click.ClickException(
            f"ToolOptions.{option} must be a whole number."
        ) from None
    if value <= 0:
        raise click.ClickException(f"ToolOptions.{option} must be greater than zero.")
    return value


def _get_float(parser: configparser.ConfigParser, option: str, fallback: float) -> float:
    try:
        value = parser.getfloat('ToolOptions', option, fallback=fallback)
    except ValueError:
        raise click.ClickException(f"ToolOptions.{option} must be a number.") from None
    if value < 0:
        raise click.ClickException(f"ToolOptions.{option} cannot be negative.")
    return value


def read_config(config_path: Path) -> ConfigSettings:
    """Read INI configuration values used throughout the tool."""

    parser = configparser.ConfigParser()
    parser.read(config_path)

    org_sections = [name for name in parser.sections() if name.startswith('Org ')]
    available_orgs: list[OrgConfig] = []
    for section in org_sections:
        available_orgs.append(
            OrgConfig(
                name=section[4:].strip() or 'default',
                target_org_url=parser.get(section, 'target_org_url', fallback='').strip(),
                persistent_alias=parser.get(section, 'persistent_alias', fallback='').strip(),
            )
        )

    # Backwards compatibility with the legacy single-org format.
    if not available_orgs and parser.has_section('Salesforce'):
        available_orgs.append(
            OrgConfig(
                name='default',
                target_org_url=parser.get('Salesforce', 'target_org_url', fallback='').strip(),
                persistent_alias=parser.get('Salesforce', 'persistent_alias', fallback='').strip(),
            )
        )

    active_org_name = parser.get('SalesforceOrgs', 'active_org', fallback='').strip()
    active_org: OrgConfig | None = None
    if active_org_name:
        active_org = next((org for org in available_orgs if org.name == active_org_name), None)
        if active_org is None:
            available_names = ', '.join(org.name for org in available_orgs) or 'none found'
            raise click.ClickException(
                f"Active org '{active_org_name}' was not found. Available orgs: {available_names}."
            )
    elif len(available_orgs) == 1:
        active_org = available_orgs[0]
    elif len(available_orgs) > 1:
        raise click.ClickException(
            "Multiple org configurations detected. Set 'SalesforceOrgs.active_org' to choose which org is active."
        )

    if active_org is None:
        raise click.ClickException(
            "No Salesforce org configuration found. Run the configuration setup to create config.ini."
        )

    missing_fields: list[str] = []
    if not active_org.target_org_url:
        missing_fields.append(f"Org {active_org.name}.target_org_url")
    if not active_org.persistent_alias:
        missing_fields.append(f"Org {active_org.name}.persistent_alias")
    if missing_fields:
        raise click.ClickException(
            "Missing required configuration values: " + ', '.join(missing_fields)
        )

    export_format = parser.get('ToolOptions', 'export_format', fallback='auto').strip().lower()
    if export_format not in EXPORT_FORMATS:
        raise click.ClickException(
            f"ToolOptions.export_format must be one of: {', '.join(EXPORT_FORMATS)}."
        )

    export_dir = Path(parser.get('ToolOptions', 'export_dir', fallback='exports').strip() or 'exports')
    if not export_dir.is_absolute():
        export_dir = Path(config_path).parent / export_dir

    return ConfigSettings(
        target_org_url=active_org.target_org_url,
        persistent_alias=active_org.persistent_alias,
        api_version=parser.get('ToolOptions', 'api_version', fallback=DEFAULT_API_VERSION).strip(),
        active_org_name=active_org.name,
        available_orgs=available_orgs,
        page_size=_get_int(parser, 'page_size', 50),
        field_permission_limit=_get_int(parser, 'field_permission_limit', 2000),
        settle_delay_seconds=_get_float(parser, 'settle_delay_seconds', 0.5),
        download_delay_seconds=_get_float(parser, 'download_delay_seconds', 0.5),
        export_dir=export_dir,
        export_format=export_format,
    )


def check_auth(alias: str, announce: bool = True) -> bool:
    """Return True when the provided alias has an active Salesforce session."""
    if announce:
        click.echo(f"Checking for existing authentication for alias: '{alias}'...")

    result = run_command(['sf', 'org', 'list', '--json'], capture_output=True, check=False)
    output = result.stdout or ''
    if output:
        try:
            org_list = json.loads(output)
        except json.JSONDecodeError as exc:
            click.echo(
                click.style(
                    f"Unable to parse Salesforce org list output: {exc}", fg='red'
                )
            )
        else:
            all_orgs = (
                org_list.get('result', {}).get('nonScratchOrgs', [])
                + org_list.get('result', {}).get('scratchOrgs', [])
            )
            for org in all_orgs:
                aliases = []
                alias_value = org.get('alias')
                if alias_value:
                    aliases.append(alias_value)
                aliases.extend(org.get('aliases', []))
                if alias in aliases or org.get('username') == alias:
                    if announce:
                        click.echo(click.style("✓ Found active session.", fg='green'))
                    return True

    if announce:
        click.echo(click.style("No active session found. A new login will be required.", fg='yellow'))
    return False


def ensure_authenticated(org_url: str, persistent_alias: str) -> bool:
    """Authenticate to the org when no valid session exists."""

    if check_auth(persistent_alias):
        return True

    click.echo(
        click.style(
            "\nAction Required: A browser window will open for authentication.",
            bold=True,
        )
    )
    login_result = run_command(
        [
            'sf',
            'org',
            'login',
            'web',
            '--instance-url',
            org_url,
            '--alias',
            persistent_alias,
        ]
    )
    return login_result.success


def _prompt_for_org(
    label_default: str,
    url_example: str,
    alias_default: str | None = None,
    current_url: str | None = None,
) -> OrgConfig:
    """Collect org configuration details interactively."""

    while True:
        org_label = questionary.text(
            "Enter a label for this org (e.g., sandbox, prod):", default=label_default
        ).ask()
        if org_label is None:
            raise click.ClickException("Configuration cancelled.")
        org_label = org_label.strip()
        if org_label:
            break
        click.echo("Org label cannot be empty. Please provide a name.")

    while True:
        url_prompt = f"Login URL for '{org_label}' (e.g., {url_example})"
        if current_url:
            url_prompt += f" [current: {current_url}]"
        org_url = questionary.text(f"{url_prompt}:").ask()
        if org_url is None:
            raise click.ClickException("Configuration cancelled.")
        org_url = org_url.strip() or (current_url or "")
        if org_url:
            break
        click.echo("Login URL cannot be empty. Please provide a value.")

    while True:
        alias = questionary.text(
            f"Persistent alias for '{org_label}' (Salesforce CLI alias used for authentication):",
            default=alias_default or org_label,
        ).ask()
        if alias is None:
            raise click.ClickException("Configuration cancelled.")
        alias = alias.strip()
        if alias:
            break
        click.echo("Alias cannot be empty. Please provide a value.")

    return OrgConfig(name=org_label, target_org_url=org_url, persistent_alias=alias)


def create_config_interactively(
    config_path: Path,
    existing_orgs: list[OrgConfig] | None = None,
    active_org_name: str | None = None,
    api_version: str = DEFAULT_API_VERSION,
) -> None:
    """Guide the user through creating a config.ini file."""

    click.echo(
        click.style(
            "\nStarting configuration setup for config.ini.",
            fg='cyan',
            bold=True,
        )
    )
    click.echo(
        "The org label is a friendly name for menus, while the persistent alias is the Salesforce CLI alias reused for login."
    )

    orgs: list[OrgConfig] = []
    url_default = 'https://login.salesforce.com'
    if existing_orgs:
        click.echo("Existing org entries found. Update the values or press Enter to keep them.")
        for org in existing_orgs:
            orgs.append(
                _prompt_for_org(
                    org.name,
                    url_default,
                    alias_default=org.persistent_alias or org.name,
                    current_url=org.target_org_url,
                )
            )
    else:
        orgs.append(_prompt_for_org('sandbox', url_default))

    while questionary.confirm(
        "Would you like to add another org configuration?", default=False
    ).ask():
        orgs.append(_prompt_for_org(f"org{len(orgs) + 1}", url_default))

    if len(orgs) == 1:
        active_org_name = orgs[0].name
    else:
        active_org_name = questionary.select(
            "Which org should be active? (Inactive orgs will be saved for later use)",
            choices=[org.name for org in orgs],
            default=active_org_name or orgs[0].name,
        ).ask()
        if active_org_name is None:
            raise click.ClickException("Configuration cancelled.")

    api_version = (
        questionary.text("API version to use:", default=api_version or DEFAULT_API_VERSION).ask()
        or DEFAULT_API_VERSION
    ).strip()

    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(
        render_config(orgs, active_org_name, api_version), encoding='utf-8'
    )

    click.echo(click.style(f"Configuration saved to {config_path}.", fg='green'))
    click.echo(
        "Comment out unused org blocks if you only want one available, and update 'active_org' to switch between them."
    )


def render_config(orgs: list[OrgConfig], active_org_name: str, api_version: str) -> str:
    """Return config.ini text for the given orgs with default tool options."""

    config_lines: list[str] = [
        "# Salesforce User Access Summary configuration.",
        "# Define multiple [Org <name>] sections and set 'SalesforceOrgs.active_org' to the active entry.",
        "",
        "[SalesforceOrgs]",
        f"active_org = {active_org_name}",
        "",
    ]

    for org in orgs:
        config_lines.append(f"[Org {org.name}]")
        config_lines.append(f"target_org_url = {org.target_org_url}")
        config_lines.append(f"persistent_alias = {org.persistent_alias}")
        config_lines.append("")

    config_lines.extend(
        [
            "[ToolOptions]",
            f"api_version = {api_version}",
            "page_size = 50",
            "field_permission_limit = 2000",
            "settle_delay_seconds = 0.5",
            "download_delay_seconds = 0.5",
            "export_dir = exports",
            "# auto | xlsx | csv",
            "export_format = auto",
            "",
        ]
    )
    return '\n'.join(config_lines)


def ensure_config(config_path: Path) -> None:
    """Create config.ini interactively on first run when needed."""

    if config_path.exists():
        try:
            read_config(config_path)
            return
        except click.ClickException as exc:
            click.echo(click.style(f"Configuration problem: {exc.message}", fg='yellow'))
            parser = configparser.ConfigParser()
            parser.read(config_path)
            existing_orgs = [
                OrgConfig(
                    name=section[4:].strip() or 'default',
                    target_org_url=parser.get(section, 'target_org_url', fallback='').strip(),
                    persistent_alias=parser.get(section, 'persistent_alias', fallback='').strip(),
                )
                for section in parser.sections()
                if section.startswith('Org ')
            ]
            click.echo(click.style("Starting configuration repair...", fg='yellow'))
            create_config_interactively(
                config_path,
                existing_orgs=existing_orgs or None,
                active_org_name=parser.get('SalesforceOrgs', 'active_org', fallback='').strip() or None,
                api_version=parser.get('ToolOptions', 'api_version', fallback=DEFAULT_API_VERSION),
            )
            return

    click.echo(click.style("Configuration file not found. Starting first-run setup...", fg='yellow'))
    create_config_interactively(config_path)
