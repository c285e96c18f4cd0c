"""Owner name lookup.

The engine never embeds user lists; dashboards receive a ``resolve_owner_name``
callable and the default one reads the Django auth user model.
"""
from __future__ import annotations

from typing import Callable

from django.contrib.auth import get_user_model

OwnerNameResolver = Callable[[object], str]


def resolve_owner_name(owner_id) -> str:
    user = get_user_model().objects.filter(pk=owner_id).first()
    if user is None:
        return str(owner_id)
    return user.get_full_name() or user.get_username()
