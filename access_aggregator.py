"""
Collect a user's access from the provider into a single ``AccessSnapshot``.

Every ``select_user`` call takes a ``SelectionToken`` carrying a fresh
generation number. Results are written only while that token is still the
current one, so a slow fetch chain for an earlier selection can never
overwrite the snapshot of a later one.

Fetch order for a selection:

1. user details (failure aborts the selection and keeps the previous view usable)
2. permission sets, then object permissions, one after the other
3. field permissions for the first object, when no object was chosen yet
4. the size-limited field permission set, after a short settle delay
5. tabs and connected apps
6. the org-wide object list, used only when the user has no object permissions
"""

import asyncio
import datetime
from dataclasses import dataclass
from pathlib import Path

from access_provider import AccessDataProvider, ProviderError, ResourceCeilingError
from access_records import (
    AccessSnapshot,
    AvailableObject,
    FieldPermissionRecord,
    Option,
    UserSummary,
)
from export_serializer import ExportSerializer, export_base_name
from notices import Notifier
from object_selector import ObjectSelector
from report_sheets import build_sheets

ALL_PROFILES_OPTION = Option(label='All Profiles', value='')


@dataclass(frozen=True)
class SelectionToken:
    generation: int
    user_id: str


class AccessAggregator:
    def __init__(
        self,
        provider: AccessDataProvider,
        notifier: Notifier | None = None,
        settle_delay: float = 0.5,
        page_size: int = 50,
    ):
        self.provider = provider
        self.notifier = notifier or Notifier()
        self.settle_delay = settle_delay
        self.snapshot = AccessSnapshot()
        self.selector = ObjectSelector(provider)
        self.available_objects: list[AvailableObject] | None = None
        self._generation = 0
        self._current: SelectionToken | None = None

        self.users: list[UserSummary] = []
        self.profiles: list[Option] = [ALL_PROFILES_OPTION]
        self.search_term = ''
        self.selected_profiles: list[str] = []
        self.include_inactive = True
        self.current_page = 1
        self.page_size = page_size

    # --- selection bookkeeping ---

    def _begin_selection(self, user_id: str) -> SelectionToken:
        self._generation += 1
        return SelectionToken(self._generation, user_id)

    def is_current(self, token: SelectionToken | None) -> bool:
        return (
            token is not None
            and token == self._current
            and token.generation == self._generation
        )

    @property
    def selected_user_id(self) -> str | None:
        return self._current.user_id if self._current else None

    def back_to_users(self) -> None:
        """Discard the snapshot and ignore any fetch still in flight."""

        self._generation += 1
        self._current = None
        self.snapshot = AccessSnapshot()
        self.selector.reset()

    # --- user access ---

    async def select_user(self, user_id: str) -> AccessSnapshot | None:
        """
        Load the access snapshot for ``user_id``.

        Returns the live snapshot once every step finished, or None when the
        user details could not be loaded or a newer selection superseded
        this one.
        """

        token = self._begin_selection(user_id)
        try:
            user = await self.provider.get_user_details(user_id)
        except ProviderError as exc:
            if token.generation == self._generation:
                self.notifier.error(f"Error loading user details: {exc.message}")
                self._keep_previous_selection()
            return None
        if token.generation != self._generation:
            return None

        self._current = token
        self.snapshot = AccessSnapshot(user_id=user_id, user=user)
        self.selector.reset()

        permission_sets = await self._fetch_degrading(
            token, self.provider.get_user_permission_sets(user_id), 'permission sets'
        )
        if not self._write(token, permission_sets=permission_sets):
            return None

        object_permissions = await self._fetch_degrading(
            token, self.provider.get_user_object_permissions(user_id), 'object permissions'
        )
        if not self._write(token, object_permissions=object_permissions):
            return None

        default_object = self.selector.refresh(object_permissions, self.available_objects or [])
        if default_object:
            await self._load_object_field_permissions(token, default_object)
            if not self.is_current(token):
                return None

        if self.settle_delay:
            await asyncio.sleep(self.settle_delay)
        field_permissions = await self._fetch_limited_field_permissions(token)
        if not self._write(token, field_permissions=field_permissions):
            return None

        tabs = await self._fetch_degrading(token, self.provider.get_user_tabs(user_id), 'tabs')
        if not self._write(token, tabs=tabs):
            return None
        connected_apps = await self._fetch_degrading(
            token, self.provider.get_user_connected_apps(user_id), 'connected apps'
        )
        if not self._write(token, connected_apps=connected_apps):
            return None

        if self.available_objects is None:
            available = await self._fetch_degrading(
                token, self.provider.get_available_objects(), 'available objects'
            )
            if not self.is_current(token):
                return None
            self.available_objects = available
        self.selector.refresh(object_permissions, self.available_objects)

        self.snapshot.is_ready = True
        return self.snapshot

    def _keep_previous_selection(self) -> None:
        """Re-issue the shown user's token under the current generation so it stays usable."""

        if self._current is not None:
            self._current = SelectionToken(self._generation, self._current.user_id)

    def _write(self, token: SelectionToken, **values) -> bool:
        """Apply ``values`` to the live snapshot if ``token`` is still current."""

        if not self.is_current(token):
            return False
        for name, value in values.items():
            setattr(self.snapshot, name, value)
        return True

    async def _fetch_degrading(self, token: SelectionToken, call, description: str) -> list:
        try:
            return list(await call or [])
        except ProviderError as exc:
            if self.is_current(token):
                self.notifier.warning(f"Unable to load {description}: {exc.message}")
            return []

    async def _fetch_limited_field_permissions(
        self, token: SelectionToken
    ) -> list[FieldPermissionRecord]:
        try:
            return list(await self.provider.get_user_field_permissions_limited(token.user_id) or [])
        except ResourceCeilingError:
            if self.is_current(token):
                self.notifier.warning(
                    "This user has too many field permissions to display at once. "
                    "Choose an object to see its field permissions."
                )
        except ProviderError as exc:
            if self.is_current(token):
                self.notifier.warning(f"Unable to load field permissions: {exc.message}")
        return []

    async def _load_object_field_permissions(
        self, token: SelectionToken, object_api_name: str
    ) -> list[FieldPermissionRecord]:
        try:
            records = await self.selector.resolve_field_permissions(token.user_id, object_api_name)
        except ProviderError as exc:
            if self.is_current(token):
                self.notifier.warning(
                    f"Unable to load field permissions for {object_api_name}: {exc.message}"
                )
            records = []
        if self.is_current(token) and self.selector.selected_object == object_api_name:
            self.snapshot.object_field_permissions = records
        return records

    async def select_object(self, object_api_name: str) -> list[FieldPermissionRecord]:
        """Show field permissions for ``object_api_name``, replacing the previous set."""

        token = self._current
        if token is None:
            self.notifier.warning('Please select a user first')
            return []
        self.selector.choose(object_api_name)
        return await self._load_object_field_permissions(token, object_api_name)

    async def load_export_field_permissions(self) -> list[FieldPermissionRecord]:
        """
        The richest field permission set available for export.

        Tries the unbounded query first and, when that fails, loads each
        object's field permissions one by one.
        """

        token = self._current
        if token is None:
            return []
        try:
            return list(await self.provider.get_user_field_permissions(token.user_id) or [])
        except ProviderError as exc:
            if not self.is_current(token):
                return []
            self.notifier.info(
                f"Full field permission query failed ({exc.message}); loading objects one at a time."
            )

        collected: list[FieldPermissionRecord] = []
        failed: list[str] = []
        for option in list(self.selector.options):
            try:
                collected.extend(
                    await self.provider.get_object_field_permissions(token.user_id, option.value)
                    or []
                )
            except ProviderError:
                failed.append(option.value)
            if not self.is_current(token):
                return []
        if failed:
            self.notifier.warning(
                f"Field permissions could not be loaded for {len(failed)} object(s): {', '.join(failed)}"
            )
        return collected

    async def export_report(
        self, serializer: ExportSerializer, export_date: datetime.date | None = None
    ) -> list[Path]:
        """Build the report sheets for the selected user and hand them to ``serializer``."""

        token = self._current
        if token is None or self.snapshot.user is None:
            self.notifier.warning('Please select a user first')
            return []

        export_fields = await self.load_export_field_permissions()
        if not self.is_current(token):
            return []
        export_date = export_date or datetime.date.today()
        sheets = build_sheets(self.snapshot, export_fields, export_date)
        return await serializer.export(
            sheets, export_base_name(self.snapshot.user.username, export_date)
        )

    # --- user browsing ---

    async def load_profiles(self) -> list[Option]:
        try:
            profiles = await self.provider.list_profiles()
        except ProviderError as exc:
            self.notifier.error(f"Error loading profiles: {exc.message}")
            return self.profiles
        self.profiles = [ALL_PROFILES_OPTION, *profiles]
        return self.profiles

    async def load_users(self) -> list[UserSummary]:
        offset = (self.current_page - 1) * self.page_size
        profile_ids = [pid for pid in self.selected_profiles if pid] or None
        try:
            self.users = list(
                await self.provider.list_users(
                    search_term=self.search_term,
                    profile_ids=profile_ids,
                    include_inactive=self.include_inactive,
                    limit=self.page_size,
                    offset=offset,
                )
            )
        except ProviderError as exc:
            self.notifier.error(f"Error loading users: {exc.message}")
        return self.users

    async def search(self, search_term: str) -> list[UserSummary]:
        self.search_term = search_term
        self.current_page = 1
        return await self.load_users()

    async def filter_profiles(self, profile_ids: list[str]) -> list[UserSummary]:
        self.selected_profiles = list(profile_ids)
        self.current_page = 1
        return await self.load_users()

    async def set_include_inactive(self, include_inactive: bool) -> list[UserSummary]:
        self.include_inactive = include_inactive
        self.current_page = 1
        return await self.load_users()

    async def next_page(self) -> list[UserSummary]:
        self.current_page += 1
        return await self.load_users()

    async def previous_page(self) -> list[UserSummary]:
        if self.current_page > 1:
            self.current_page -= 1
            return await self.load_users()
        return self.users

    @property
    def page_info(self) -> str:
        if not self.users:
            return 'No users found'
        start = (self.current_page - 1) * self.page_size + 1
        return f"Showing {start}-{start + len(self.users) - 1}"
