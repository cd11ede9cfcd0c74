import asyncio

from access_provider import AccessDataProvider
from access_records import (
    AvailableObject,
    ConnectedAppRecord,
    FieldPermissionRecord,
    ObjectPermissionRecord,
    Option,
    PermissionSetRecord,
    TabRecord,
    UserSummary,
)


def make_user(user_id: str, name: str = None, username: str = None, **kwargs) -> UserSummary:
    name = name or f"User {user_id}"
    return UserSummary(
        id=user_id,
        name=name,
        username=username or f"{user_id.lower()}@example.com",
        **kwargs,
    )


class FakeProvider(AccessDataProvider):
    """In-memory provider with per-call delays and errors keyed by (method, key)."""

    def __init__(self):
        self.users: dict[str, UserSummary] = {}
        self.profiles: list[Option] = []
        self.permission_sets: dict[str, list[PermissionSetRecord]] = {}
        self.object_permissions: dict[str, list[ObjectPermissionRecord]] = {}
        self.field_permissions: dict[str, list[FieldPermissionRecord]] = {}
        self.tabs: dict[str, list[TabRecord]] = {}
        self.connected_apps: dict[str, list[ConnectedAppRecord]] = {}
        self.available_objects: list[AvailableObject] = []
        self.delays: dict[tuple, float] = {}
        self.errors: dict[tuple, Exception] = {}
        self.calls: list[tuple] = []
        self.list_users_kwargs: list[dict] = []

    def add_user(self, user: UserSummary, **access) -> UserSummary:
        self.users[user.id] = user
        for name, value in access.items():
            getattr(self, name)[user.id] = value
        return user

    async def _respond(self, method: str, key, value):
        self.calls.append((method, key))
        delay = self.delays.get((method, key), 0)
        if delay:
            await asyncio.sleep(delay)
        error = self.errors.get((method, key)) or self.errors.get((method, None))
        if error:
            raise error
        return value

    def call_names(self, key=None) -> list[str]:
        return [method for method, call_key in self.calls if key is None or call_key == key]

    async def list_users(self, search_term='', profile_ids=None, include_inactive=True, limit=50, offset=0):
        self.list_users_kwargs.append(
            {
                'search_term': search_term,
                'profile_ids': profile_ids,
                'include_inactive': include_inactive,
                'limit': limit,
                'offset': offset,
            }
        )
        users = [u for u in self.users.values() if include_inactive or u.is_active]
        if search_term:
            users = [u for u in users if search_term.lower() in u.name.lower()]
        return await self._respond('list_users', None, users[offset:offset + limit])

    async def list_profiles(self):
        return await self._respond('list_profiles', None, list(self.profiles))

    async def get_user_details(self, user_id):
        return await self._respond('get_user_details', user_id, self.users.get(user_id))

    async def get_user_permission_sets(self, user_id):
        return await self._respond(
            'get_user_permission_sets', user_id, self.permission_sets.get(user_id, [])
        )

    async def get_user_object_permissions(self, user_id):
        return await self._respond(
            'get_user_object_permissions', user_id, self.object_permissions.get(user_id, [])
        )

    async def get_user_field_permissions_limited(self, user_id):
        return await self._respond(
            'get_user_field_permissions_limited', user_id, self.field_permissions.get(user_id, [])
        )

    async def get_user_field_permissions(self, user_id):
        return await self._respond(
            'get_user_field_permissions', user_id, self.field_permissions.get(user_id, [])
        )

    async def get_object_field_permissions(self, user_id, object_api_name):
        records = [
            r for r in self.field_permissions.get(user_id, [])
            if r.object_api_name == object_api_name
        ]
        return await self._respond('get_object_field_permissions', (user_id, object_api_name), records)

    async def get_available_objects(self):
        return await self._respond('get_available_objects', None, list(self.available_objects))

    async def get_user_tabs(self, user_id):
        return await self._respond('get_user_tabs', user_id, self.tabs.get(user_id, []))

    async def get_user_connected_apps(self, user_id):
        return await self._respond(
            'get_user_connected_apps', user_id, self.connected_apps.get(user_id, [])
        )
