"""Resolve which objects a user can drill into and which one is displayed."""

from access_provider import AccessDataProvider
from access_records import AvailableObject, FieldPermissionRecord, ObjectPermissionRecord, Option


def _label_sort_key(option: Option) -> tuple[str, str, str]:
    return (option.label.casefold(), option.label, option.value)


def derive_object_options(object_permissions: list[ObjectPermissionRecord]) -> list[Option]:
    """One option per distinct object API name, first-seen label kept, sorted by label."""

    labels: dict[str, str] = {}
    for record in object_permissions:
        api_name = record.object_api_name
        if not api_name or api_name in labels:
            continue
        labels[api_name] = record.object_label or api_name
    return sorted(
        (Option(label=label, value=api_name) for api_name, label in labels.items()),
        key=_label_sort_key,
    )


def resolve_object_options(
    object_permissions: list[ObjectPermissionRecord],
    available_objects: list[AvailableObject],
) -> list[Option]:
    """
    Object options for the field permission drill-down.

    Falls back to the org-wide object list, in the order the provider returned
    it, when the user has no object permissions at all.
    """

    options = derive_object_options(object_permissions)
    if options:
        return options
    return [
        Option(label=obj.label or obj.api_name, value=obj.api_name)
        for obj in available_objects
        if obj.api_name
    ]


def default_object(object_permissions: list[ObjectPermissionRecord]) -> str | None:
    """The first object derived from object permissions; never taken from the fallback list."""

    options = derive_object_options(object_permissions)
    return options[0].value if options else None


class ObjectSelector:
    """Tracks the object options offered to the user and the current drill-down object."""

    def __init__(self, provider: AccessDataProvider):
        self.provider = provider
        self.options: list[Option] = []
        self.selected_object: str | None = None
        self.chosen_by_user = False

    def reset(self) -> None:
        self.options = []
        self.selected_object = None
        self.chosen_by_user = False

    def refresh(
        self,
        object_permissions: list[ObjectPermissionRecord],
        available_objects: list[AvailableObject],
    ) -> str | None:
        """Recompute the options and return the object that should be auto-loaded, if any."""

        self.options = resolve_object_options(object_permissions, available_objects)
        if self.selected_object is None and not self.chosen_by_user:
            self.selected_object = default_object(object_permissions)
            return self.selected_object
        return None

    def choose(self, object_api_name: str) -> None:
        self.selected_object = object_api_name
        self.chosen_by_user = True

    async def resolve_field_permissions(
        self, user_id: str, object_api_name: str
    ) -> list[FieldPermissionRecord]:
        """Field permissions for one object. An empty list is a valid answer."""

        records = await self.provider.get_object_field_permissions(user_id, object_api_name)
        return list(records or [])
