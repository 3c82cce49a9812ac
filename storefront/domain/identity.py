# storefront/domain/identity.py
import uuid
from dataclasses import dataclass
from typing import MutableMapping, Optional, Union

from storefront.utils.settings import GUEST_CART_SESSION_KEY


@dataclass(frozen=True)
class GuestIdentity:
    guest_id: str


@dataclass(frozen=True)
class UserIdentity:
    user_id: int


Identity = Union[GuestIdentity, UserIdentity]


def parse_uuid(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    try:
        return str(uuid.UUID(str(value)))
    except ValueError:
        return None


def resolve_guest_id(header_value: Optional[str], session: MutableMapping[str, str]) -> str:
    """
    Id gościa: najpierw nagłówek od klienta (jeśli to poprawny UUID),
    potem to co jest w sesji, na końcu nowy UUID zapisany w sesji.
    """
    from_header = parse_uuid(header_value)
    if from_header:
        return from_header

    from_session = parse_uuid(session.get(GUEST_CART_SESSION_KEY))
    if from_session:
        return from_session

    guest_id = str(uuid.uuid4())
    session[GUEST_CART_SESSION_KEY] = guest_id
    return guest_id
