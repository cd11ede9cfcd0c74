"""User-facing notices raised while loading and exporting access data."""

from dataclasses import dataclass

import click

VARIANT_COLOURS = {
    'success': 'green',
    'info': 'cyan',
    'warning': 'yellow',
    'error': 'red',
}


@dataclass(frozen=True)
class Notice:
    """A single non-blocking message shown to the user."""

    title: str
    message: str
    variant: str = 'info'


class Notifier:
    """Record notices and echo them to the console with a colour per variant."""

    def __init__(self, echo: bool = True):
        self.echo = echo
        self.notices: list[Notice] = []

    def notify(self, title: str, message: str, variant: str = 'info') -> Notice:
        notice = Notice(title, message, variant)
        self.notices.append(notice)
        if self.echo:
            click.echo(
                click.style(
                    f"{title}: {message}", fg=VARIANT_COLOURS.get(variant, 'cyan')
                )
            )
        return notice

    def success(self, message: str, title: str = 'Success') -> Notice:
        return self.notify(title, message, 'success')

    def info(self, message: str, title: str = 'Info') -> Notice:
        return self.notify(title, message, 'info')

    def warning(self, message: str, title: str = 'Warning') -> Notice:
        return self.notify(title, message, 'warning')

    def error(self, message: str, title: str = 'Error') -> Notice:
        return self.notify(title, message, 'error')

    def by_variant(self, variant: str) -> list[Notice]:
        return [notice for notice in self.notices if notice.variant == variant]
